"""
siquan/services/login_guard.py — Failed-login rate limiter
Counts failed attempts per email inside a trailing window. No in-process
state: every decision is one query against login_attempts.
Storage errors fail open so an outage never locks users out.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from siquan.config import get_settings
from siquan.core import logging as app_logging
from siquan.core.errors import StorageError
from siquan.entities import LoginAttempt
from siquan.models import RateLimitDecision
from siquan.utils.timezone import isoformat_utc, utc_now
from siquan.utils.validators import normalize_email

settings = get_settings()

RATE_LIMIT_REASON = "rate_limit_exceeded"


def window() -> timedelta:
    return timedelta(minutes=settings.login_window_minutes)


def _lockout_message(minutes_remaining: int) -> str:
    return f"登入嘗試次數過多。請在 {minutes_remaining} 分鐘後再試。"


def recent_failed_attempts(
    session: Session,
    email: str,
    now: datetime,
) -> list[LoginAttempt]:
    """Failed attempts for `email` inside the window, newest first."""
    stmt = (
        select(LoginAttempt)
        .where(
            LoginAttempt.email == normalize_email(email),
            LoginAttempt.success.is_(False),
            LoginAttempt.attempted_at >= now - window(),
        )
        .order_by(LoginAttempt.attempted_at.desc())
    )
    return list(session.scalars(stmt))


def check_rate_limit(
    session: Session,
    email: str,
    now: Optional[datetime] = None,
) -> RateLimitDecision:
    """
    Deny once the failed-attempt count reaches the threshold.
    The lock lifts `window` after the oldest failure still inside the window.
    """
    now = now or utc_now()
    try:
        attempts = recent_failed_attempts(session, email, now)
    except Exception as exc:
        session.rollback()
        app_logging.log_error("login_guard", "check_rate_limit", exc)
        app_logging.log_rate_limit_check(email, allowed=True, failed_attempts=0, fail_open=True)
        return RateLimitDecision(allowed=True)

    failed = len(attempts)
    limit = settings.login_max_failed_attempts

    if failed >= limit:
        oldest = attempts[-1].attempted_at
        unlock_at = oldest + window()
        minutes_remaining = max(1, math.ceil((unlock_at - now).total_seconds() / 60))
        app_logging.log_rate_limit_check(email, allowed=False, failed_attempts=failed)
        return RateLimitDecision(
            allowed=False,
            reason=RATE_LIMIT_REASON,
            message=_lockout_message(minutes_remaining),
            attempts_remaining=0,
            unlock_at=isoformat_utc(unlock_at),
            minutes_remaining=minutes_remaining,
        )

    app_logging.log_rate_limit_check(email, allowed=True, failed_attempts=failed)
    return RateLimitDecision(allowed=True, attempts_remaining=limit - failed)


def record_login_attempt(
    session: Session,
    email: str,
    success: bool,
    ip_address: str = "unknown",
    user_agent: str = "unknown",
    now: Optional[datetime] = None,
) -> int:
    """
    Insert one attempt row. A success purges the email's failed attempts
    inside the window. Returns how many failures were purged.
    """
    now = now or utc_now()
    normalized = normalize_email(email)

    try:
        session.add(LoginAttempt(
            email=normalized,
            ip_address=ip_address or "unknown",
            user_agent=user_agent or "unknown",
            success=success,
            attempted_at=now,
        ))
        session.commit()
    except Exception as exc:
        session.rollback()
        app_logging.log_error("login_guard", "record_attempt", exc, {"success": success})
        raise StorageError("無法記錄登入嘗試") from exc

    cleared = 0
    if success:
        # The attempt is already saved; a failed purge only leaves stale failures.
        try:
            result = session.execute(
                delete(LoginAttempt).where(
                    LoginAttempt.email == normalized,
                    LoginAttempt.success.is_(False),
                    LoginAttempt.attempted_at >= now - window(),
                )
            )
            session.commit()
            cleared = result.rowcount or 0
        except Exception as exc:
            session.rollback()
            app_logging.log_error("login_guard", "clear_failures", exc)
            cleared = 0

    app_logging.log_login_attempt(normalized, success, ip_address, cleared_failures=cleared)
    return cleared
