"""
siquan/services/publishing.py — Scheduled post auto-publish
Run by the cron trigger; publishes every scheduled post whose time has come.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from siquan.core import logging as app_logging
from siquan.entities import Post
from siquan.models import AutoPublishResult, SchedulingStatus
from siquan.utils.timezone import isoformat_utc, utc_now


def due_posts(session: Session, now: datetime) -> list[Post]:
    stmt = (
        select(Post)
        .where(
            Post.scheduling_status == SchedulingStatus.SCHEDULED.value,
            Post.scheduled_publish_at.is_not(None),
            Post.scheduled_publish_at <= now,
        )
        .order_by(Post.scheduled_publish_at)
    )
    return list(session.scalars(stmt))


def auto_publish_scheduled_posts(
    session: Session,
    now: Optional[datetime] = None,
) -> AutoPublishResult:
    now = now or utc_now()
    published_ids = []
    for post in due_posts(session, now):
        post.is_published = True
        post.scheduling_status = SchedulingStatus.PUBLISHED.value
        post.updated_at = now
        published_ids.append(post.id)
    session.commit()

    app_logging.log_auto_publish(published_ids)
    return AutoPublishResult(
        published_count=len(published_ids),
        published_post_ids=published_ids,
        timestamp=isoformat_utc(now),
    )
