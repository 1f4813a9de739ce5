"""
siquan/routers/posts.py — Post, comment, like and bookmark endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core.auth import get_current_user, get_optional_user
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import (
    CommentOut,
    CommentRequest,
    PostCategory,
    PostCreateRequest,
    PostOut,
    PostUpdateRequest,
    ToggleResult,
)
from siquan.services import posts as post_service

router = APIRouter()


@router.get("", response_model=list[PostOut])
@limiter.limit(RATE_LIMITS["content"])
def list_posts(
    request: Request,
    category: Optional[PostCategory] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> list[PostOut]:
    rows = post_service.list_published(
        db,
        category=category.value if category else None,
        limit=limit,
        offset=offset,
    )
    return [post_service.to_post_out(post) for post in rows]


@router.post("", response_model=PostOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def create_post(
    request: Request,
    body: PostCreateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> PostOut:
    post = post_service.create_post(
        db,
        user,
        title=body.title,
        content=body.content,
        category=body.category,
        cover_image=body.cover_image,
        audio_file_url=body.audio_file_url,
        scheduled_publish_at=body.scheduled_publish_at,
    )
    return post_service.to_post_out(post)


@router.get("/bookmarks", response_model=list[PostOut])
@limiter.limit(RATE_LIMITS["content"])
def my_bookmarks(
    request: Request,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> list[PostOut]:
    return [post_service.to_post_out(post) for post in post_service.list_bookmarked(db, user)]


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["content"])
def delete_comment(
    request: Request,
    comment_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> None:
    post_service.delete_comment(db, comment_id, user)


@router.get("/{slug}", response_model=PostOut)
@limiter.limit(RATE_LIMITS["content"])
def get_post(
    request: Request,
    slug: str,
    db: Session = Depends(get_db),
    viewer: Optional[Profile] = Depends(get_optional_user),
) -> PostOut:
    return post_service.to_post_out(post_service.get_post_by_slug(db, slug, viewer))


@router.patch("/{post_id}", response_model=PostOut)
@limiter.limit(RATE_LIMITS["content"])
def update_post(
    request: Request,
    post_id: int,
    body: PostUpdateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> PostOut:
    post = post_service.update_post(
        db,
        post_id,
        user,
        title=body.title,
        content=body.content,
        category=body.category,
        cover_image=body.cover_image,
        audio_file_url=body.audio_file_url,
        publish_type=body.publish_type,
        scheduled_publish_at=body.scheduled_publish_at,
    )
    return post_service.to_post_out(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["content"])
def delete_post(
    request: Request,
    post_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> None:
    post_service.delete_post(db, post_id, user)


@router.get("/{post_id}/comments", response_model=list[CommentOut])
@limiter.limit(RATE_LIMITS["content"])
def list_comments(
    request: Request,
    post_id: int,
    db: Session = Depends(get_db),
) -> list[CommentOut]:
    return post_service.list_comments(db, post_id)


@router.post("/{post_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def add_comment(
    request: Request,
    post_id: int,
    body: CommentRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> CommentOut:
    return post_service.add_comment(db, post_id, user, body.content)


@router.post("/{post_id}/like", response_model=ToggleResult)
@limiter.limit(RATE_LIMITS["content"])
def toggle_like(
    request: Request,
    post_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ToggleResult:
    return post_service.toggle_like(db, post_id, user)


@router.post("/{post_id}/bookmark", response_model=ToggleResult)
@limiter.limit(RATE_LIMITS["content"])
def toggle_bookmark(
    request: Request,
    post_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ToggleResult:
    return post_service.toggle_bookmark(db, post_id, user)
