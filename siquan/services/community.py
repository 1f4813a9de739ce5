"""
siquan/services/community.py — Discussion groups, threads, membership and chat
Group creators join as `admin`. Members open threads and post messages;
group admins, moderators and site admins pin, lock and delete threads and
remove members. Message deletes are soft.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from siquan.config import get_settings
from siquan.core.errors import ForbiddenError, NotFoundError, ValidationFailed
from siquan.entities import DiscussionGroup, DiscussionThread, GroupMember, GroupMessage, Profile
from siquan.models import GroupOut, GroupRole, MemberOut, MessageOut, ThreadOut
from siquan.utils.timezone import utc_now
from siquan.utils.validators import require_text

settings = get_settings()


def _group_out(group: DiscussionGroup, member_count: int) -> GroupOut:
    out = GroupOut.model_validate(group)
    out.member_count = member_count
    return out


def _message_out(message: GroupMessage) -> MessageOut:
    out = MessageOut.model_validate(message)
    out.username = message.author.username if message.author else None
    return out


def get_group(session: Session, group_id: int) -> DiscussionGroup:
    group = session.get(DiscussionGroup, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def get_membership(session: Session, group_id: int, user_id: str) -> Optional[GroupMember]:
    return session.scalar(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
    )


def _require_member(session: Session, group_id: int, user: Profile) -> GroupMember:
    member = get_membership(session, group_id, user.id)
    if member is None:
        raise ForbiddenError("You must join this group first")
    return member


def can_moderate(session: Session, group_id: int, user: Profile) -> bool:
    """Site admins, plus the group's own admins and moderators."""
    if user.is_admin:
        return True
    member = get_membership(session, group_id, user.id)
    return member is not None and member.role in (GroupRole.ADMIN.value, GroupRole.MODERATOR.value)


def _require_readable(session: Session, group: DiscussionGroup, user: Profile) -> None:
    if group.is_private and not user.is_admin:
        _require_member(session, group.id, user)


# ──────────────────────────────────────────────────────────────────────────────
# Groups
# ──────────────────────────────────────────────────────────────────────────────

def list_groups(session: Session) -> list[GroupOut]:
    counts = (
        select(GroupMember.group_id, func.count(GroupMember.id).label("members"))
        .group_by(GroupMember.group_id)
        .subquery()
    )
    stmt = (
        select(DiscussionGroup, counts.c.members)
        .outerjoin(counts, counts.c.group_id == DiscussionGroup.id)
        .where(DiscussionGroup.is_private.is_(False))
        .order_by(DiscussionGroup.name)
    )
    return [_group_out(group, members or 0) for group, members in session.execute(stmt)]


def create_group(
    session: Session,
    creator: Profile,
    name: Optional[str],
    description: Optional[str] = None,
    category: Optional[str] = None,
    is_private: bool = False,
) -> GroupOut:
    name = require_text(name)
    if not name:
        raise ValidationFailed("Group name is required")

    group = DiscussionGroup(
        name=name,
        description=require_text(description),
        category=require_text(category),
        is_private=is_private,
        created_by=creator.id,
    )
    session.add(group)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ValidationFailed("A group with this name already exists")

    session.add(GroupMember(
        group_id=group.id,
        user_id=creator.id,
        role=GroupRole.ADMIN.value,
        has_completed_onboarding=True,
    ))
    session.commit()
    logger.info(f"Group {group.id} '{name}' created by {creator.id}.")
    return _group_out(group, 1)


# ──────────────────────────────────────────────────────────────────────────────
# Membership
# ──────────────────────────────────────────────────────────────────────────────

def join_group(session: Session, group_id: int, user: Profile) -> GroupMember:
    get_group(session, group_id)
    if get_membership(session, group_id, user.id) is not None:
        raise ValidationFailed("Already a member")

    member = GroupMember(group_id=group_id, user_id=user.id, role=GroupRole.MEMBER.value)
    session.add(member)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationFailed("Already a member")
    return member


def leave_group(session: Session, group_id: int, user: Profile) -> None:
    member = _require_member(session, group_id, user)
    session.delete(member)
    session.commit()


def complete_onboarding(session: Session, group_id: int, user: Profile) -> GroupMember:
    member = _require_member(session, group_id, user)
    member.has_completed_onboarding = True
    session.commit()
    return member


def list_members(session: Session, group_id: int, user: Profile) -> list[MemberOut]:
    _require_readable(session, get_group(session, group_id), user)
    rows = session.scalars(
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at, GroupMember.id)
    )
    return [
        MemberOut(
            user_id=row.user_id,
            username=row.profile.username if row.profile else None,
            role=row.role,
            joined_at=row.joined_at,
            has_completed_onboarding=row.has_completed_onboarding,
        )
        for row in rows
    ]


def kick_member(session: Session, group_id: int, target_user_id: str, actor: Profile) -> None:
    """Remove someone else from the group. Group admins can't be removed."""
    get_group(session, group_id)
    if not can_moderate(session, group_id, actor):
        raise ForbiddenError("Only group admins can remove members")
    if target_user_id == actor.id:
        raise ValidationFailed("Use leave to exit a group yourself")

    member = get_membership(session, group_id, target_user_id)
    if member is None:
        raise NotFoundError("Member not found")
    if member.role == GroupRole.ADMIN.value:
        raise ForbiddenError("Group admins cannot be removed")

    session.delete(member)
    session.commit()
    logger.info(f"User {target_user_id} removed from group {group_id} by {actor.id}.")


# ──────────────────────────────────────────────────────────────────────────────
# Threads
# ──────────────────────────────────────────────────────────────────────────────

MAX_THREAD_TITLE_CHARS = 100
MAX_THREAD_DESCRIPTION_CHARS = 500


def _thread_out(thread: DiscussionThread) -> ThreadOut:
    out = ThreadOut.model_validate(thread)
    out.creator_name = thread.creator.username if thread.creator else None
    return out


def _check_thread_text(title: Optional[str], description: Optional[str]) -> None:
    if title is not None and len(title) > MAX_THREAD_TITLE_CHARS:
        raise ValidationFailed(f"Thread title must be at most {MAX_THREAD_TITLE_CHARS} characters")
    if description is not None and len(description) > MAX_THREAD_DESCRIPTION_CHARS:
        raise ValidationFailed(
            f"Thread description must be at most {MAX_THREAD_DESCRIPTION_CHARS} characters"
        )


def get_thread(session: Session, thread_id: int) -> DiscussionThread:
    thread = session.get(DiscussionThread, thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")
    return thread


def create_thread(
    session: Session,
    group_id: int,
    user: Profile,
    title: Optional[str],
    description: Optional[str] = None,
) -> ThreadOut:
    get_group(session, group_id)
    if not user.is_admin:
        _require_member(session, group_id, user)

    title = require_text(title)
    description = require_text(description)
    if not title:
        raise ValidationFailed("Thread title is required")
    _check_thread_text(title, description)

    now = utc_now()
    thread = DiscussionThread(
        group_id=group_id,
        created_by=user.id,
        title=title,
        description=description,
        last_activity_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(thread)
    session.commit()
    logger.info(f"Thread {thread.id} opened in group {group_id} by {user.id}.")
    return _thread_out(thread)


def list_threads(session: Session, group_id: int, user: Profile) -> list[ThreadOut]:
    """Pinned threads first, then by most recent activity."""
    _require_readable(session, get_group(session, group_id), user)
    rows = session.scalars(
        select(DiscussionThread)
        .where(DiscussionThread.group_id == group_id)
        .order_by(
            DiscussionThread.is_pinned.desc(),
            DiscussionThread.last_activity_at.desc(),
            DiscussionThread.id.desc(),
        )
    )
    return [_thread_out(row) for row in rows]


def update_thread(
    session: Session,
    thread_id: int,
    user: Profile,
    title: Optional[str] = None,
    description: Optional[str] = None,
    is_pinned: Optional[bool] = None,
    is_locked: Optional[bool] = None,
) -> ThreadOut:
    """Edit, pin or lock. Omitted fields keep their value."""
    thread = get_thread(session, thread_id)
    if not can_moderate(session, thread.group_id, user):
        raise ForbiddenError("Only group admins can manage threads")

    if title is not None:
        title = require_text(title)
        if not title:
            raise ValidationFailed("Thread title is required")
    _check_thread_text(title, description)

    if title is not None:
        thread.title = title
    if description is not None:
        thread.description = require_text(description)
    if is_pinned is not None:
        thread.is_pinned = is_pinned
    if is_locked is not None:
        thread.is_locked = is_locked
    session.commit()
    return _thread_out(thread)


def delete_thread(session: Session, thread_id: int, user: Profile) -> None:
    """Hard delete; the thread's messages go with it."""
    thread = get_thread(session, thread_id)
    if not can_moderate(session, thread.group_id, user):
        raise ForbiddenError("Only group admins can manage threads")
    session.execute(delete(GroupMessage).where(GroupMessage.thread_id == thread_id))
    session.delete(thread)
    session.commit()
    logger.info(f"Thread {thread_id} deleted by {user.id}.")


# ──────────────────────────────────────────────────────────────────────────────
# Messages
# ──────────────────────────────────────────────────────────────────────────────

def _thread_in_group(session: Session, group_id: int, thread_id: int) -> DiscussionThread:
    thread = session.get(DiscussionThread, thread_id)
    if thread is None or thread.group_id != group_id:
        raise NotFoundError("Thread not found")
    return thread


def post_message(
    session: Session,
    group_id: int,
    user: Profile,
    content: Optional[str],
    thread_id: Optional[int] = None,
) -> MessageOut:
    """Post to the group, or into one of its threads. Locked threads refuse posts."""
    get_group(session, group_id)
    member = _require_member(session, group_id, user)

    content = require_text(content)
    if not content:
        raise ValidationFailed("Message cannot be empty")
    if len(content) > settings.max_message_chars:
        raise ValidationFailed(f"Message must be at most {settings.max_message_chars} characters")

    now = utc_now()
    if thread_id is not None:
        thread = _thread_in_group(session, group_id, thread_id)
        if thread.is_locked:
            raise ForbiddenError("This thread is locked")
        thread.message_count = DiscussionThread.message_count + 1
        thread.last_activity_at = now

    message = GroupMessage(group_id=group_id, thread_id=thread_id, user_id=user.id, content=content)
    member.last_read_at = now
    session.add(message)
    session.commit()
    return _message_out(message)


def list_messages(
    session: Session,
    group_id: int,
    user: Profile,
    limit: Optional[int] = None,
    thread_id: Optional[int] = None,
) -> list[MessageOut]:
    """Most recent non-deleted messages, returned oldest first."""
    _require_readable(session, get_group(session, group_id), user)

    limit = limit or settings.group_message_page_size
    stmt = select(GroupMessage).where(
        GroupMessage.group_id == group_id,
        GroupMessage.is_deleted.is_(False),
    )
    if thread_id is not None:
        _thread_in_group(session, group_id, thread_id)
        stmt = stmt.where(GroupMessage.thread_id == thread_id)
    stmt = stmt.order_by(GroupMessage.created_at.desc(), GroupMessage.id.desc()).limit(limit)
    rows = list(session.scalars(stmt))
    rows.reverse()
    return [_message_out(row) for row in rows]


def delete_message(session: Session, message_id: int, user: Profile) -> None:
    message = session.get(GroupMessage, message_id)
    if message is None or message.is_deleted:
        raise NotFoundError("Message not found")

    if message.user_id != user.id and not can_moderate(session, message.group_id, user):
        raise ForbiddenError("You can only delete your own messages")

    message.is_deleted = True
    thread = session.get(DiscussionThread, message.thread_id) if message.thread_id else None
    if thread is not None and thread.message_count > 0:
        thread.message_count = DiscussionThread.message_count - 1
    session.commit()
