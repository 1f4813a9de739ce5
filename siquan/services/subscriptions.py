"""
siquan/services/subscriptions.py — Newsletter subscribe / unsubscribe / resubscribe
Unsubscribe links carry the subscriber's permanent token, so no login is needed.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from siquan.core.errors import NotFoundError, ValidationFailed
from siquan.entities import Subscriber
from siquan.utils.timezone import utc_now
from siquan.utils.validators import (
    generate_unsubscribe_token,
    is_plausible_email,
    normalize_email,
    require_text,
)


def subscribe(session: Session, email: Optional[str]) -> str:
    """Create or re-enable a subscription. Returns the user-facing message."""
    if not isinstance(email, str) or not is_plausible_email(email):
        raise ValidationFailed("Invalid email address")

    normalized = normalize_email(email)
    existing = session.scalar(select(Subscriber).where(Subscriber.email == normalized))

    if existing is not None:
        if existing.is_subscribed:
            raise ValidationFailed("Email already subscribed")
        _set_subscribed(existing, True)
        session.commit()
        logger.info(f"Subscriber {existing.id} resubscribed via signup form.")
        return "Successfully resubscribed!"

    subscriber = Subscriber(
        email=normalized,
        unsubscribe_token=generate_unsubscribe_token(),
        is_subscribed=True,
    )
    session.add(subscriber)
    session.commit()
    logger.info(f"New subscriber {subscriber.id}.")
    return "Successfully subscribed!"


def get_by_token(session: Session, token: Optional[str]) -> Subscriber:
    token = require_text(token)
    if not token:
        raise ValidationFailed("Token is required")
    subscriber = session.scalar(
        select(Subscriber).where(Subscriber.unsubscribe_token == token)
    )
    if subscriber is None:
        raise NotFoundError("Invalid token")
    return subscriber


def unsubscribe(session: Session, token: Optional[str]) -> Subscriber:
    subscriber = get_by_token(session, token)
    _set_subscribed(subscriber, False)
    session.commit()
    logger.info(f"Subscriber {subscriber.id} unsubscribed.")
    return subscriber


def resubscribe(session: Session, token: Optional[str]) -> Subscriber:
    subscriber = get_by_token(session, token)
    _set_subscribed(subscriber, True)
    session.commit()
    logger.info(f"Subscriber {subscriber.id} resubscribed.")
    return subscriber


def _set_subscribed(subscriber: Subscriber, subscribed: bool) -> None:
    now = utc_now()
    subscriber.is_subscribed = subscribed
    if subscribed:
        subscriber.subscribed_at = now
        subscriber.unsubscribed_at = None
    else:
        subscriber.unsubscribed_at = now
