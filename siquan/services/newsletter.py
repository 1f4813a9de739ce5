"""
siquan/services/newsletter.py — Newsletter dispatch
Sequential send loop: one tracking row, one rendered email and one Gmail
call per subscriber, with a fixed pause between sends. Per-recipient
failures are counted and never abort the loop. No retries, no resume.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from siquan.clients import gmail_client
from siquan.clients.gmail_client import EmailSendResult
from siquan.config import get_settings
from siquan.core import logging as app_logging
from siquan.core.errors import NotFoundError, ServiceError, ValidationFailed
from siquan.entities import EmailStat, Post, Subscriber
from siquan.models import NewsletterResult
from siquan.services import email_service
from siquan.utils.timezone import isoformat_utc, utc_now
from siquan.utils.validators import generate_tracking_token, require_text

settings = get_settings()

# (to_address, subject, html_body, plain_body) -> EmailSendResult
Sender = Callable[..., EmailSendResult]


def _default_sender() -> Sender:
    # Resolved per call so tests can patch gmail_client.send_email.
    return gmail_client.send_email


def _delay_seconds() -> float:
    return settings.newsletter_send_delay_ms / 1000.0


def active_subscribers(
    session: Session,
    subscriber_ids: Optional[list[int]] = None,
) -> list[Subscriber]:
    """
    Currently subscribed rows. A non-empty `subscriber_ids` narrows the set;
    unsubscribed ids in the list are skipped.
    """
    stmt = select(Subscriber).where(Subscriber.is_subscribed.is_(True))
    if subscriber_ids:
        stmt = stmt.where(Subscriber.id.in_(subscriber_ids))
    return list(session.scalars(stmt.order_by(Subscriber.id)))


def send_newsletter(
    session: Session,
    post_id: Optional[int],
    subscriber_ids: Optional[list[int]] = None,
    base_url: Optional[str] = None,
    sender: Optional[Sender] = None,
    delay_seconds: Optional[float] = None,
) -> NewsletterResult:
    """Email a post to its target subscribers and flag the post as emailed."""
    if post_id is None:
        raise ValidationFailed("Post ID is required")

    post = session.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")

    subscribers = active_subscribers(session, subscriber_ids)
    if not subscribers:
        raise ValidationFailed(
            "No matching subscribers found" if subscriber_ids is not None else "No active subscribers"
        )

    sender = sender or _default_sender()
    base_url = (base_url or settings.site_url).rstrip("/")
    delay = _delay_seconds() if delay_seconds is None else delay_seconds
    author_name = post.author.username if post.author else "Anonymous"
    subject = email_service.newsletter_subject(post.title)

    sent_count = 0
    failed_count = 0
    start = time.monotonic()

    for index, subscriber in enumerate(subscribers):
        if index and delay:
            time.sleep(delay)
        try:
            tracking_token = generate_tracking_token()
            session.add(EmailStat(
                subscriber_id=subscriber.id,
                post_id=post.id,
                tracking_token=tracking_token,
            ))
            session.commit()

            context = email_service.build_newsletter_context(
                title=post.title,
                content=post.content,
                slug=post.slug,
                author=author_name,
                created_at=post.created_at,
                tracking_token=tracking_token,
                unsubscribe_token=subscriber.unsubscribe_token,
                base_url=base_url,
                cover_image=post.cover_image,
            )
            result = sender(
                subscriber.email,
                subject,
                email_service.generate_newsletter_html(context),
                email_service.generate_newsletter_plain(context),
            )
            if result.success:
                sent_count += 1
            else:
                failed_count += 1
                logger.error(f"Failed to send to subscriber {subscriber.id}: {result.error}")
        except Exception as exc:
            session.rollback()
            failed_count += 1
            logger.error(f"Error sending to subscriber {subscriber.id}: {exc}")

    post.is_email_sent = True
    post.email_sent_at = utc_now()
    session.commit()

    app_logging.log_newsletter_dispatch(
        post_id=post.id,
        total_subscribers=len(subscribers),
        sent_count=sent_count,
        failed_count=failed_count,
        duration_ms=(time.monotonic() - start) * 1000,
    )
    return NewsletterResult(
        sent_count=sent_count,
        failed_count=failed_count,
        total_subscribers=len(subscribers),
    )


def send_custom_email(
    session: Session,
    subject: Optional[str],
    content: Optional[str],
    sender: Optional[Sender] = None,
) -> dict:
    """Plain announcement to every active subscriber; no tracking rows."""
    subject = require_text(subject)
    content = require_text(content)
    if not subject or not content:
        raise ValidationFailed("Subject and content are required")

    subscribers = active_subscribers(session)
    if not subscribers:
        raise ValidationFailed("No active subscribers found")

    sender = sender or _default_sender()
    html_body = email_service.generate_custom_email_html(content)

    sent_count = 0
    failed_count = 0
    for subscriber in subscribers:
        result = sender(subscriber.email, subject, html_body, content)
        if result.success:
            sent_count += 1
        else:
            failed_count += 1
            logger.error(f"Announcement to subscriber {subscriber.id} failed: {result.error}")

    logger.info(f"Announcement '{subject}' sent: {sent_count} ok, {failed_count} failed.")
    return {"success": failed_count == 0, "sentCount": sent_count, "failedCount": failed_count}


def send_test_email(
    to: Optional[str],
    subject: Optional[str],
    content: Optional[str],
    sender: Optional[Sender] = None,
) -> dict:
    to = require_text(to)
    subject = require_text(subject)
    content = require_text(content)
    if not to or not subject or not content:
        raise ValidationFailed("Missing required fields: to, subject, content")

    sender = sender or _default_sender()
    result = sender(
        to,
        email_service.tagged_test_subject(subject),
        email_service.generate_test_email_html(subject, content),
        content,
    )
    if not result.success:
        raise ServiceError(result.error or "Failed to send test email", status_code=500)

    return {
        "message": "Test email sent successfully",
        "to": to,
        "subject": subject,
        "timestamp": isoformat_utc(utc_now()),
    }
