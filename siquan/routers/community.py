"""
siquan/routers/community.py — Discussion group, thread and membership endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core.auth import get_current_user
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import (
    GroupCreateRequest,
    GroupOut,
    MemberOut,
    MessageOut,
    MessageRequest,
    ThreadCreateRequest,
    ThreadOut,
    ThreadUpdateRequest,
)
from siquan.services import community

router = APIRouter()


@router.get("", response_model=list[GroupOut])
@limiter.limit(RATE_LIMITS["content"])
def list_groups(request: Request, db: Session = Depends(get_db)) -> list[GroupOut]:
    return community.list_groups(db)


@router.post("", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def create_group(
    request: Request,
    body: GroupCreateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> GroupOut:
    return community.create_group(
        db, user, body.name,
        description=body.description,
        category=body.category,
        is_private=body.is_private,
    )


@router.post("/{group_id}/join")
@limiter.limit(RATE_LIMITS["content"])
def join_group(
    request: Request,
    group_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> dict:
    member = community.join_group(db, group_id, user)
    return {"success": True, "role": member.role}


@router.post("/{group_id}/leave")
@limiter.limit(RATE_LIMITS["content"])
def leave_group(
    request: Request,
    group_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> dict:
    community.leave_group(db, group_id, user)
    return {"success": True}


@router.post("/{group_id}/onboarding")
@limiter.limit(RATE_LIMITS["content"])
def complete_onboarding(
    request: Request,
    group_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> dict:
    member = community.complete_onboarding(db, group_id, user)
    return {"success": True, "hasCompletedOnboarding": member.has_completed_onboarding}


@router.get("/{group_id}/messages", response_model=list[MessageOut])
@limiter.limit(RATE_LIMITS["content"])
def list_messages(
    request: Request,
    group_id: int,
    limit: Optional[int] = Query(None, ge=1, le=200),
    thread_id: Optional[int] = Query(None, alias="threadId"),
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> list[MessageOut]:
    return community.list_messages(db, group_id, user, limit=limit, thread_id=thread_id)


@router.post("/{group_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def post_message(
    request: Request,
    group_id: int,
    body: MessageRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> MessageOut:
    return community.post_message(db, group_id, user, body.content, thread_id=body.thread_id)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["content"])
def delete_message(
    request: Request,
    message_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> None:
    community.delete_message(db, message_id, user)


# ──────────────────────────────────────────────────────────────────────────────
# Members
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{group_id}/members", response_model=list[MemberOut])
@limiter.limit(RATE_LIMITS["content"])
def list_members(
    request: Request,
    group_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> list[MemberOut]:
    return community.list_members(db, group_id, user)


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["content"])
def kick_member(
    request: Request,
    group_id: int,
    user_id: str,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> None:
    community.kick_member(db, group_id, user_id, user)


# ──────────────────────────────────────────────────────────────────────────────
# Threads
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{group_id}/threads", response_model=list[ThreadOut])
@limiter.limit(RATE_LIMITS["content"])
def list_threads(
    request: Request,
    group_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> list[ThreadOut]:
    return community.list_threads(db, group_id, user)


@router.post("/{group_id}/threads", response_model=ThreadOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["content"])
def create_thread(
    request: Request,
    group_id: int,
    body: ThreadCreateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ThreadOut:
    return community.create_thread(db, group_id, user, body.title, body.description)


@router.patch("/threads/{thread_id}", response_model=ThreadOut)
@limiter.limit(RATE_LIMITS["content"])
def update_thread(
    request: Request,
    thread_id: int,
    body: ThreadUpdateRequest,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> ThreadOut:
    return community.update_thread(
        db, thread_id, user,
        title=body.title,
        description=body.description,
        is_pinned=body.is_pinned,
        is_locked=body.is_locked,
    )


@router.delete("/threads/{thread_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RATE_LIMITS["content"])
def delete_thread(
    request: Request,
    thread_id: int,
    db: Session = Depends(get_db),
    user: Profile = Depends(get_current_user),
) -> None:
    community.delete_thread(db, thread_id, user)
