"""
siquan/models.py — Pydantic request/response schemas
Wire format is camelCase (postId, sentCount, attemptsRemaining); Python
attributes stay snake_case. Request fields are optional so handlers can
answer missing-field cases with their own messages.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class PostCategory(str, Enum):
    AI_NEWS = "AI News"
    FINANCE = "Finance"
    STUDY_OVERSEAS = "Study Overseas"
    ENTREPRENEUR_STORY = "Entrepreneur Story"
    OTHER = "Other"


class SchedulingStatus(str, Enum):
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    DRAFT = "draft"


class PublishType(str, Enum):
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    DRAFT = "draft"


class AdminActionType(str, Enum):
    GRANT_ADMIN = "grant_admin"
    REVOKE_ADMIN = "revoke_admin"


class GroupRole(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"


# ──────────────────────────────────────────────────────────────────────────────
# Login guard
# ──────────────────────────────────────────────────────────────────────────────

class RateLimitCheckRequest(CamelModel):
    email: Optional[str] = None


class RecordLoginAttemptRequest(CamelModel):
    email: Optional[str] = None
    success: bool = False


class RateLimitDecision(CamelModel):
    allowed: bool
    attempts_remaining: Optional[int] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    unlock_at: Optional[str] = None
    minutes_remaining: Optional[int] = None


# ──────────────────────────────────────────────────────────────────────────────
# Accounts
# ──────────────────────────────────────────────────────────────────────────────

class SignupRequest(CamelModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileOut(CamelModel):
    id: str
    username: str
    is_admin: bool = False
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    user_title: Optional[str] = None


class AuthResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: ProfileOut


class PasswordCheckRequest(CamelModel):
    password: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Newsletter
# ──────────────────────────────────────────────────────────────────────────────

class SubscribeRequest(CamelModel):
    email: Optional[str] = None


class TokenRequest(CamelModel):
    token: Optional[str] = None


class SendNewsletterRequest(CamelModel):
    post_id: Optional[int] = None
    subscriber_ids: Optional[list[int]] = None


class NewsletterResult(CamelModel):
    message: str = "Newsletter sent successfully"
    sent_count: int
    failed_count: int
    total_subscribers: int


class CustomEmailRequest(CamelModel):
    subject: Optional[str] = None
    content: Optional[str] = None


class EmailTestRequest(CamelModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None


class SubscriberOut(CamelModel):
    id: int
    email: str
    is_subscribed: bool
    subscribed_at: datetime
    unsubscribed_at: Optional[datetime] = None
    emails_sent: int = 0
    emails_opened: int = 0
    emails_clicked: int = 0


# ──────────────────────────────────────────────────────────────────────────────
# Admin
# ──────────────────────────────────────────────────────────────────────────────

class AddAdminRequest(CamelModel):
    email: Optional[str] = None
    username: Optional[str] = None


class RevokeAdminRequest(CamelModel):
    user_id: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Posts
# ──────────────────────────────────────────────────────────────────────────────

class PostCreateRequest(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    audio_file_url: Optional[str] = None
    category: PostCategory = PostCategory.OTHER
    scheduled_publish_at: Optional[datetime] = None


class PostUpdateRequest(CamelModel):
    """Omitted fields keep their stored value."""
    title: Optional[str] = None
    content: Optional[str] = None
    cover_image: Optional[str] = None
    audio_file_url: Optional[str] = None
    category: Optional[PostCategory] = None
    publish_type: Optional[PublishType] = None
    scheduled_publish_at: Optional[datetime] = None


class PostOut(CamelModel):
    id: int
    author_id: str
    author_name: Optional[str] = None
    title: str
    slug: str
    content: str
    preview: str = ""
    word_count: int = 0
    cover_image: Optional[str] = None
    audio_file_url: Optional[str] = None
    category: str
    view_count: int
    like_count: int
    is_published: bool
    is_email_sent: bool
    email_sent_at: Optional[datetime] = None
    scheduled_publish_at: Optional[datetime] = None
    scheduling_status: str
    created_at: datetime
    updated_at: datetime


class ViewRequest(CamelModel):
    post_id: Optional[int] = None


class CommentRequest(CamelModel):
    content: Optional[str] = None


class CommentOut(CamelModel):
    id: int
    post_id: int
    user_id: str
    username: Optional[str] = None
    content: str
    created_at: datetime


class ToggleResult(CamelModel):
    active: bool
    count: Optional[int] = None


# ──────────────────────────────────────────────────────────────────────────────
# Community
# ──────────────────────────────────────────────────────────────────────────────

class GroupCreateRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_private: bool = False


class GroupOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    is_private: bool
    created_by: Optional[str] = None
    member_count: int = 0
    created_at: datetime


class MessageRequest(CamelModel):
    content: Optional[str] = None
    thread_id: Optional[int] = None


class MessageOut(CamelModel):
    id: int
    group_id: int
    thread_id: Optional[int] = None
    user_id: str
    username: Optional[str] = None
    content: str
    message_type: str
    is_edited: bool
    created_at: datetime


class MemberOut(CamelModel):
    user_id: str
    username: Optional[str] = None
    role: str
    joined_at: datetime
    has_completed_onboarding: bool


class ThreadCreateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None


class ThreadUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_pinned: Optional[bool] = None
    is_locked: Optional[bool] = None


class ThreadOut(CamelModel):
    id: int
    group_id: int
    created_by: Optional[str] = None
    creator_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    is_pinned: bool
    is_locked: bool
    message_count: int
    last_activity_at: datetime
    created_at: datetime


# ──────────────────────────────────────────────────────────────────────────────
# Library
# ──────────────────────────────────────────────────────────────────────────────

class BookCreateRequest(CamelModel):
    title: Optional[str] = None
    author: Optional[str] = None
    cover_image_url: Optional[str] = None
    description: Optional[str] = None
    isbn: Optional[str] = None


class BookOut(CamelModel):
    id: int
    title: str
    author: str
    cover_image_url: Optional[str] = None
    description: Optional[str] = None
    isbn: Optional[str] = None
    created_at: datetime


class TakeawayRequest(CamelModel):
    content: Optional[str] = None


class TakeawayOut(CamelModel):
    id: int
    book_id: int
    user_id: str
    username: Optional[str] = None
    content: str
    created_at: datetime


# ──────────────────────────────────────────────────────────────────────────────
# Publishing
# ──────────────────────────────────────────────────────────────────────────────

class AutoPublishResult(BaseModel):
    success: bool = True
    published_count: int = 0
    published_post_ids: list[int] = Field(default_factory=list)
    timestamp: Optional[str] = None
    error: Optional[str] = None


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialise by alias, dropping None fields."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
