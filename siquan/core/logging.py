"""
siquan/core/logging.py — loguru structured JSON logging setup
One helper per mandatory log event; every record carries
component + operation so log search can group by handler.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    The hosting platform captures stdout, so no file sinks are added.
    """
    logger.remove()
    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,
        backtrace=True,
        diagnose=False,  # never dump locals (passwords, tokens) into logs
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


def _mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:2]}***@{domain}"


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_rate_limit_check(
    email: str,
    allowed: bool,
    failed_attempts: int,
    fail_open: bool = False,
) -> None:
    """Every login guard decision."""
    record = _build_log_record("login_guard", "check_rate_limit", {
        "email": _mask_email(email),
        "allowed": allowed,
        "failed_attempts": failed_attempts,
        "fail_open": fail_open,
    })
    if allowed:
        logger.info(json.dumps(record))
    else:
        logger.warning(json.dumps(record))


def log_login_attempt(
    email: str,
    success: bool,
    ip_address: str,
    cleared_failures: int = 0,
) -> None:
    """Every recorded login attempt."""
    record = _build_log_record("login_guard", "record_attempt", {
        "email": _mask_email(email),
        "success": success,
        "ip_address": ip_address,
        "cleared_failures": cleared_failures,
    })
    logger.info(json.dumps(record))


def log_email_send(
    to_address: str,
    subject: str,
    success: bool,
    latency_ms: float,
    error: Optional[str] = None,
) -> None:
    """Every Gmail API send."""
    record = _build_log_record("gmail_client", "email_send", {
        "to": _mask_email(to_address),
        "subject": subject,
        "success": success,
        "latency_ms": round(latency_ms, 2),
        "error": error,
    })
    logger.info(json.dumps(record))


def log_newsletter_dispatch(
    post_id: int,
    total_subscribers: int,
    sent_count: int,
    failed_count: int,
    duration_ms: float,
) -> None:
    """One record per newsletter run, after the send loop."""
    record = _build_log_record("newsletter", "dispatch", {
        "post_id": post_id,
        "total_subscribers": total_subscribers,
        "sent_count": sent_count,
        "failed_count": failed_count,
        "duration_ms": round(duration_ms, 2),
    })
    logger.info(json.dumps(record))


def log_admin_action(
    performed_by: str,
    target_user_id: str,
    action_type: str,
) -> None:
    """Every admin role grant or revoke."""
    record = _build_log_record("admin", action_type, {
        "performed_by": performed_by,
        "target_user_id": target_user_id,
    })
    logger.info(json.dumps(record))


def log_auto_publish(published_ids: list[int]) -> None:
    record = _build_log_record("publishing", "auto_publish", {
        "published_count": len(published_ids),
        "published_post_ids": published_ids,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error, with stack trace and caller context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
