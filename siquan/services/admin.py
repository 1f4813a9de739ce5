"""
siquan/services/admin.py — Admin role management and newsletter oversight
Every grant/revoke is written to admin_actions_log.
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from siquan.clients import database, gmail_client
from siquan.core import logging as app_logging
from siquan.core.errors import NotFoundError, ValidationFailed
from siquan.entities import AdminAction, EmailStat, Post, Profile, Subscriber
from siquan.models import AdminActionType, ProfileOut, SubscriberOut
from siquan.utils.timezone import isoformat_utc, utc_now
from siquan.utils.validators import normalize_email, require_text


def _log_action(session: Session, admin: Profile, target: Profile, action: AdminActionType) -> None:
    session.add(AdminAction(
        performed_by=admin.id,
        target_user_id=target.id,
        action_type=action.value,
    ))
    app_logging.log_admin_action(admin.id, target.id, action.value)


def grant_admin(
    session: Session,
    admin: Profile,
    email: Optional[str],
    username: Optional[str],
) -> dict[str, Any]:
    email = require_text(email)
    username = require_text(username)
    if not email or not username:
        raise ValidationFailed("Email and username are required")

    # Email is not exposed on public profiles; the username is the lookup key.
    target = session.scalar(select(Profile).where(Profile.username == username))
    if target is None:
        raise NotFoundError(
            "User not found. The user must sign up first before being granted admin privileges."
        )
    if target.is_admin:
        raise ValidationFailed("User is already an admin")

    target.is_admin = True
    _log_action(session, admin, target, AdminActionType.GRANT_ADMIN)
    session.commit()

    return {
        "message": f"Successfully granted admin privileges to {target.username}",
        "user": {
            "id": target.id,
            "username": target.username,
            "email": normalize_email(email),
        },
    }


def revoke_admin(session: Session, admin: Profile, user_id: Optional[str]) -> dict[str, Any]:
    user_id = require_text(user_id)
    if not user_id:
        raise ValidationFailed("User ID is required")
    if user_id == admin.id:
        raise ValidationFailed("You cannot revoke your own admin privileges")

    target = session.get(Profile, user_id)
    if target is None:
        raise NotFoundError("User not found")
    if not target.is_admin:
        raise ValidationFailed("User is not an admin")

    target.is_admin = False
    _log_action(session, admin, target, AdminActionType.REVOKE_ADMIN)
    session.commit()

    return {"message": f"Successfully revoked admin privileges from {target.username}"}


def list_admins(session: Session) -> list[ProfileOut]:
    rows = session.scalars(
        select(Profile).where(Profile.is_admin.is_(True)).order_by(Profile.username)
    )
    return [ProfileOut.model_validate(row) for row in rows]


def list_subscribers(session: Session) -> list[SubscriberOut]:
    """All subscribers, newest first, with send/open/click totals."""
    stats = (
        select(
            EmailStat.subscriber_id,
            func.count(EmailStat.id).label("sent"),
            func.count(EmailStat.opened_at).label("opened"),
            func.count(EmailStat.clicked_at).label("clicked"),
        )
        .group_by(EmailStat.subscriber_id)
        .subquery()
    )
    stmt = (
        select(Subscriber, stats.c.sent, stats.c.opened, stats.c.clicked)
        .outerjoin(stats, stats.c.subscriber_id == Subscriber.id)
        .order_by(Subscriber.subscribed_at.desc(), Subscriber.id.desc())
    )
    out = []
    for subscriber, sent, opened, clicked in session.execute(stmt):
        item = SubscriberOut.model_validate(subscriber)
        item.emails_sent = sent or 0
        item.emails_opened = opened or 0
        item.emails_clicked = clicked or 0
        out.append(item)
    return out


def verify_newsletter_system(session: Session) -> dict[str, Any]:
    """Readiness report for the newsletter pipeline; never raises."""
    checks: dict[str, Any] = {
        "gmail": gmail_client.config_status(),
        "database": {"connected": database.check_connection()},
    }
    if checks["database"]["connected"]:
        checks["database"].update({
            "subscribers": session.scalar(select(func.count(Subscriber.id))) or 0,
            "activeSubscribers": session.scalar(
                select(func.count(Subscriber.id)).where(Subscriber.is_subscribed.is_(True))
            ) or 0,
            "emailStats": session.scalar(select(func.count(EmailStat.id))) or 0,
            "postsEmailed": session.scalar(
                select(func.count(Post.id)).where(Post.is_email_sent.is_(True))
            ) or 0,
        })

    ready = checks["gmail"]["isOAuth2Configured"] and checks["database"]["connected"]
    return {
        "ready": ready,
        "checks": checks,
        "timestamp": isoformat_utc(utc_now()),
    }
