"""
siquan/services/tracking.py — Newsletter open/click tracking and post views
Only the first open and first click are stamped.
"""
from __future__ import annotations

import base64
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from siquan.core.errors import NotFoundError, ValidationFailed
from siquan.entities import EmailStat, Post
from siquan.utils.timezone import utc_now

TRANSPARENT_GIF = base64.b64decode(
    "R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _stat_for_token(session: Session, token: str) -> Optional[EmailStat]:
    return session.scalar(select(EmailStat).where(EmailStat.tracking_token == token))


def record_open(session: Session, token: str) -> bool:
    """Stamp opened_at once. Returns True when this call stamped it."""
    stat = _stat_for_token(session, token)
    if stat is None or stat.opened_at is not None:
        return False
    stat.opened_at = utc_now()
    session.commit()
    return True


def record_click(session: Session, token: str) -> bool:
    """Stamp clicked_at once. Returns True when this call stamped it."""
    stat = _stat_for_token(session, token)
    if stat is None or stat.clicked_at is not None:
        return False
    stat.clicked_at = utc_now()
    session.commit()
    return True


def increment_view_count(session: Session, post_id: Optional[int]) -> int:
    """Atomic view_count + 1; returns the new count."""
    if post_id is None:
        raise ValidationFailed("Post ID is required")
    result = session.execute(
        update(Post)
        .where(Post.id == post_id)
        .values(view_count=Post.view_count + 1)
    )
    if not result.rowcount:
        session.rollback()
        raise NotFoundError("Post not found")
    session.commit()
    return session.scalar(select(Post.view_count).where(Post.id == post_id))
