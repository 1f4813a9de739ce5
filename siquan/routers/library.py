"""
siquan/routers/library.py — Book library endpoints
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core.auth import get_current_user, require_admin
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import BookCreateRequest, BookOut, TakeawayOut, TakeawayRequest, ToggleResult
from siquan.services import library

router = APIRouter()


@router.get("", response_model=list[BookOut])
@limiter.limit(RATE_LIMITS["content"])
def list_books(request: Request, db: Session = Depends(get_db)) -> list[BookOut]:
    return library.list_books(db)


@router.post("", response_model=BookOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def create_book(
    request: Request,
    body: BookCreateRequest,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
) -> BookOut:
    return library.create_book(
        db, admin, body.title, body.author,
        cover_image_url=body.cover_image_url,
        description=body.description,
        isbn=body.isbn,
    )


@router.get("/reading-list", response_model=list[BookOut])
@limiter.limit(RATE_LIMITS["content"])
def my_reading_list(
    request: Request,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> list[BookOut]:
    return library.list_reading_list(db, user)


@router.get("/{book_id}", response_model=BookOut)
@limiter.limit(RATE_LIMITS["content"])
def get_book(request: Request, book_id: int, db: Session = Depends(get_db)) -> BookOut:
    return BookOut.model_validate(library.get_book(db, book_id))


@router.get("/{book_id}/takeaways", response_model=list[TakeawayOut])
@limiter.limit(RATE_LIMITS["content"])
def list_takeaways(request: Request, book_id: int, db: Session = Depends(get_db)) -> list[TakeawayOut]:
    return library.list_takeaways(db, book_id)


@router.post("/{book_id}/takeaways", response_model=TakeawayOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def add_takeaway(
    request: Request,
    book_id: int,
    body: TakeawayRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> TakeawayOut:
    return library.add_takeaway(db, book_id, user, body.content)


@router.get("/{book_id}/reading-list", response_model=ToggleResult)
@limiter.limit(RATE_LIMITS["content"])
def reading_list_status(
    request: Request,
    book_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ToggleResult:
    library.get_book(db, book_id)
    return ToggleResult(active=library.is_on_reading_list(db, book_id, user))


@router.post("/{book_id}/reading-list", response_model=ToggleResult)
@limiter.limit(RATE_LIMITS["content"])
def toggle_reading_list(
    request: Request,
    book_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ToggleResult:
    return library.toggle_reading_list(db, book_id, user)
