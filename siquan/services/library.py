"""
siquan/services/library.py — Book library, reader takeaways and personal reading lists
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from siquan.core.errors import NotFoundError, ValidationFailed
from siquan.entities import Book, BookTakeaway, Profile, ReadingListEntry
from siquan.models import BookOut, TakeawayOut, ToggleResult
from siquan.utils.validators import require_text


def _takeaway_out(takeaway: BookTakeaway) -> TakeawayOut:
    out = TakeawayOut.model_validate(takeaway)
    out.username = takeaway.author.username if takeaway.author else None
    return out


def list_books(session: Session) -> list[BookOut]:
    rows = session.scalars(select(Book).order_by(Book.created_at.desc(), Book.id.desc()))
    return [BookOut.model_validate(row) for row in rows]


def get_book(session: Session, book_id: int) -> Book:
    book = session.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book not found")
    return book


def create_book(
    session: Session,
    admin: Profile,
    title: Optional[str],
    author: Optional[str],
    cover_image_url: Optional[str] = None,
    description: Optional[str] = None,
    isbn: Optional[str] = None,
) -> BookOut:
    title = require_text(title)
    author = require_text(author)
    if not title or not author:
        raise ValidationFailed("Title and author are required")

    book = Book(
        title=title,
        author=author,
        cover_image_url=require_text(cover_image_url),
        description=require_text(description),
        isbn=require_text(isbn),
        created_by=admin.id,
    )
    session.add(book)
    session.commit()
    return BookOut.model_validate(book)


def add_takeaway(session: Session, book_id: int, user: Profile, content: Optional[str]) -> TakeawayOut:
    get_book(session, book_id)
    content = require_text(content)
    if not content:
        raise ValidationFailed("Takeaway cannot be empty")

    takeaway = BookTakeaway(book_id=book_id, user_id=user.id, content=content)
    session.add(takeaway)
    session.commit()
    return _takeaway_out(takeaway)


def list_takeaways(session: Session, book_id: int) -> list[TakeawayOut]:
    get_book(session, book_id)
    rows = session.scalars(
        select(BookTakeaway)
        .where(BookTakeaway.book_id == book_id)
        .order_by(BookTakeaway.created_at.desc(), BookTakeaway.id.desc())
    )
    return [_takeaway_out(row) for row in rows]


# ──────────────────────────────────────────────────────────────────────────────
# Reading list
# ──────────────────────────────────────────────────────────────────────────────

def toggle_reading_list(session: Session, book_id: int, user: Profile) -> ToggleResult:
    """Add the book to the user's list, or take it off if already there."""
    get_book(session, book_id)
    removed = session.execute(
        delete(ReadingListEntry).where(
            ReadingListEntry.book_id == book_id,
            ReadingListEntry.user_id == user.id,
        )
    ).rowcount
    if not removed:
        session.add(ReadingListEntry(book_id=book_id, user_id=user.id))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
    return ToggleResult(active=not removed)


def is_on_reading_list(session: Session, book_id: int, user: Profile) -> bool:
    return session.scalar(
        select(ReadingListEntry.id).where(
            ReadingListEntry.book_id == book_id,
            ReadingListEntry.user_id == user.id,
        )
    ) is not None


def list_reading_list(session: Session, user: Profile) -> list[BookOut]:
    """Newest additions first."""
    rows = session.scalars(
        select(Book)
        .join(ReadingListEntry, ReadingListEntry.book_id == Book.id)
        .where(ReadingListEntry.user_id == user.id)
        .order_by(ReadingListEntry.created_at.desc(), ReadingListEntry.id.desc())
    )
    return [BookOut.model_validate(row) for row in rows]
