"""
siquan/services/posts.py — Posts, comments, likes and bookmarks
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from siquan.config import get_settings
from siquan.core.errors import ForbiddenError, NotFoundError, ValidationFailed
from siquan.entities import Bookmark, Comment, EmailStat, Like, Post, Profile
from siquan.models import (
    CommentOut,
    PostCategory,
    PostOut,
    PublishType,
    SchedulingStatus,
    ToggleResult,
)
from siquan.utils.text import calculate_word_count, get_preview_text, slugify
from siquan.utils.timezone import to_naive_utc, utc_now
from siquan.utils.validators import require_text

settings = get_settings()

MIN_SCHEDULE_LEAD = timedelta(minutes=5)


def to_post_out(post: Post) -> PostOut:
    out = PostOut.model_validate(post)
    out.author_name = post.author.username if post.author else None
    out.preview = get_preview_text(post.content, settings.preview_text_chars)
    out.word_count = calculate_word_count(post.content)
    return out


def _can_manage(user: Optional[Profile], owner_id: str) -> bool:
    return user is not None and (user.is_admin or user.id == owner_id)


# ──────────────────────────────────────────────────────────────────────────────
# Posts
# ──────────────────────────────────────────────────────────────────────────────

def create_post(
    session: Session,
    author: Profile,
    title: Optional[str],
    content: Optional[str],
    category: PostCategory = PostCategory.OTHER,
    cover_image: Optional[str] = None,
    audio_file_url: Optional[str] = None,
    scheduled_publish_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Post:
    """
    Publish immediately, or schedule when `scheduled_publish_at` is given.
    Scheduled posts stay unpublished until the auto-publish trigger runs.
    """
    title = require_text(title)
    content = require_text(content)
    if not title or not content:
        raise ValidationFailed("Title and content are required")

    now = now or utc_now()
    publish_at = None
    if scheduled_publish_at is not None:
        publish_at = to_naive_utc(scheduled_publish_at)
        if publish_at < now + MIN_SCHEDULE_LEAD:
            raise ValidationFailed("Scheduled time must be at least 5 minutes in the future")

    post = Post(
        author_id=author.id,
        title=title,
        slug=slugify(title),
        content=content,
        category=category.value,
        cover_image=require_text(cover_image),
        audio_file_url=require_text(audio_file_url),
        is_published=publish_at is None,
        scheduled_publish_at=publish_at,
        scheduling_status=(
            SchedulingStatus.SCHEDULED.value if publish_at else SchedulingStatus.PUBLISHED.value
        ),
        created_at=now,
        updated_at=now,
    )
    session.add(post)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationFailed("A post with this slug already exists")

    logger.info(f"Post {post.id} created by {author.id} ({post.scheduling_status}).")
    return post


def list_published(
    session: Session,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Post]:
    stmt = select(Post).where(Post.is_published.is_(True))
    if category:
        stmt = stmt.where(Post.category == category)
    stmt = stmt.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit).offset(offset)
    return list(session.scalars(stmt))


def list_scheduled(session: Session) -> list[Post]:
    stmt = (
        select(Post)
        .where(Post.scheduling_status == SchedulingStatus.SCHEDULED.value)
        .order_by(Post.scheduled_publish_at)
    )
    return list(session.scalars(stmt))


def get_post(session: Session, post_id: int) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


def get_post_by_slug(session: Session, slug: str, viewer: Optional[Profile] = None) -> Post:
    """Unpublished posts are visible only to their author and admins."""
    post = session.scalar(select(Post).where(Post.slug == slug))
    if post is None or (not post.is_published and not _can_manage(viewer, post.author_id)):
        raise NotFoundError("Post not found")
    return post


def update_post(
    session: Session,
    post_id: int,
    user: Profile,
    title: Optional[str] = None,
    content: Optional[str] = None,
    category: Optional[PostCategory] = None,
    cover_image: Optional[str] = None,
    audio_file_url: Optional[str] = None,
    publish_type: Optional[PublishType] = None,
    scheduled_publish_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Post:
    """
    Edit a post in place; the slug never changes. `publish_type` moves it
    between published, scheduled and draft. A schedule time on its own
    implies `scheduled`. Empty strings clear the cover image and audio.
    """
    post = get_post(session, post_id)
    if not _can_manage(user, post.author_id):
        raise ForbiddenError("You can only edit your own posts")

    new_title = require_text(title)
    new_content = require_text(content)
    if (title is not None and not new_title) or (content is not None and not new_content):
        raise ValidationFailed("Title and content are required")

    now = now or utc_now()
    if publish_type is None and scheduled_publish_at is not None:
        publish_type = PublishType.SCHEDULED

    publish_at = None
    if publish_type is PublishType.SCHEDULED:
        if scheduled_publish_at is None:
            raise ValidationFailed("Scheduled time is required")
        publish_at = to_naive_utc(scheduled_publish_at)
        if publish_at < now + MIN_SCHEDULE_LEAD:
            raise ValidationFailed("Scheduled time must be at least 5 minutes in the future")

    if new_title:
        post.title = new_title
    if new_content:
        post.content = new_content
    if category is not None:
        post.category = category.value
    if cover_image is not None:
        post.cover_image = require_text(cover_image)
    if audio_file_url is not None:
        post.audio_file_url = require_text(audio_file_url)

    if publish_type is PublishType.SCHEDULED:
        post.is_published = False
        post.scheduling_status = SchedulingStatus.SCHEDULED.value
        post.scheduled_publish_at = publish_at
    elif publish_type is PublishType.IMMEDIATE:
        post.is_published = True
        post.scheduling_status = SchedulingStatus.PUBLISHED.value
        post.scheduled_publish_at = None
    elif publish_type is PublishType.DRAFT:
        post.is_published = False
        post.scheduling_status = SchedulingStatus.DRAFT.value
        post.scheduled_publish_at = None

    post.updated_at = now
    session.commit()
    logger.info(f"Post {post.id} updated by {user.id} ({post.scheduling_status}).")
    return post


def delete_post(session: Session, post_id: int, user: Profile) -> None:
    post = get_post(session, post_id)
    if not _can_manage(user, post.author_id):
        raise ForbiddenError("You can only delete your own posts")
    for dependent in (Comment, Like, Bookmark, EmailStat):
        session.execute(delete(dependent).where(dependent.post_id == post_id))
    session.delete(post)
    session.commit()
    logger.info(f"Post {post_id} deleted by {user.id}.")


# ──────────────────────────────────────────────────────────────────────────────
# Comments
# ──────────────────────────────────────────────────────────────────────────────

def _comment_out(comment: Comment) -> CommentOut:
    out = CommentOut.model_validate(comment)
    out.username = comment.author.username if comment.author else None
    return out


def add_comment(session: Session, post_id: int, user: Profile, content: Optional[str]) -> CommentOut:
    content = require_text(content)
    if not content:
        raise ValidationFailed("Comment cannot be empty")
    if len(content) > settings.max_comment_chars:
        raise ValidationFailed(f"Comment must be at most {settings.max_comment_chars} characters")

    post = get_post(session, post_id)
    if not post.is_published:
        raise NotFoundError("Post not found")

    comment = Comment(post_id=post.id, user_id=user.id, content=content)
    session.add(comment)
    session.commit()
    return _comment_out(comment)


def list_comments(session: Session, post_id: int) -> list[CommentOut]:
    get_post(session, post_id)
    rows = session.scalars(
        select(Comment).where(Comment.post_id == post_id).order_by(Comment.created_at, Comment.id)
    )
    return [_comment_out(row) for row in rows]


def delete_comment(session: Session, comment_id: int, user: Profile) -> None:
    comment = session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    if not _can_manage(user, comment.user_id):
        raise ForbiddenError("You can only delete your own comments")
    session.delete(comment)
    session.commit()


# ──────────────────────────────────────────────────────────────────────────────
# Likes & bookmarks
# ──────────────────────────────────────────────────────────────────────────────

def toggle_like(session: Session, post_id: int, user: Profile) -> ToggleResult:
    """Like or unlike; like_count is adjusted in the same transaction."""
    get_post(session, post_id)
    existing = session.scalar(
        select(Like).where(Like.post_id == post_id, Like.user_id == user.id)
    )
    if existing is not None:
        session.delete(existing)
        session.execute(
            update(Post)
            .where(Post.id == post_id, Post.like_count > 0)
            .values(like_count=Post.like_count - 1)
        )
    else:
        session.add(Like(post_id=post_id, user_id=user.id))
        session.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(like_count=Post.like_count + 1)
        )
    active = existing is None
    try:
        session.commit()
    except IntegrityError:
        # A concurrent request already inserted this like.
        session.rollback()
        active = True

    count = session.scalar(select(Post.like_count).where(Post.id == post_id))
    return ToggleResult(active=active, count=count)


def toggle_bookmark(session: Session, post_id: int, user: Profile) -> ToggleResult:
    get_post(session, post_id)
    removed = session.execute(
        delete(Bookmark).where(Bookmark.post_id == post_id, Bookmark.user_id == user.id)
    ).rowcount
    if not removed:
        session.add(Bookmark(post_id=post_id, user_id=user.id))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
    return ToggleResult(active=not removed)


def list_bookmarked(session: Session, user: Profile) -> list[Post]:
    stmt = (
        select(Post)
        .join(Bookmark, Bookmark.post_id == Post.id)
        .where(Bookmark.user_id == user.id, Post.is_published.is_(True))
        .order_by(Bookmark.created_at.desc())
    )
    return list(session.scalars(stmt))
