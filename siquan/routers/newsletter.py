"""
siquan/routers/newsletter.py — Subscription and newsletter mail endpoints
Subscribe/unsubscribe are public; every endpoint that sends mail is admin-only.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from siquan.clients import gmail_client
from siquan.clients.database import get_db
from siquan.core import logging as app_logging
from siquan.core.auth import require_admin
from siquan.core.errors import ServiceError
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import (
    CustomEmailRequest,
    EmailTestRequest,
    NewsletterResult,
    SendNewsletterRequest,
    SubscribeRequest,
    TokenRequest,
)
from siquan.services import newsletter, subscriptions

router = APIRouter()


def _internal_error(operation: str, exc: Exception, detail: str) -> HTTPException:
    app_logging.log_error("newsletter", operation, exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# ──────────────────────────────────────────────────────────────────────────────
# Subscriptions — public
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/subscribe")
@limiter.limit(RATE_LIMITS["subscribe"])
def subscribe(
    request: Request,
    body: SubscribeRequest,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        message = subscriptions.subscribe(db, body.email)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("subscribe", exc, "Failed to subscribe")
    return {"message": message}


@router.post("/unsubscribe")
@limiter.limit(RATE_LIMITS["subscribe"])
def unsubscribe(
    request: Request,
    body: TokenRequest,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        subscriptions.unsubscribe(db, body.token)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("unsubscribe", exc, "Failed to unsubscribe")
    return {"message": "Successfully unsubscribed"}


@router.post("/resubscribe")
@limiter.limit(RATE_LIMITS["subscribe"])
def resubscribe(
    request: Request,
    body: TokenRequest,
    db: Session = Depends(get_db),
) -> dict[str, str]:
    try:
        subscriptions.resubscribe(db, body.token)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("resubscribe", exc, "Failed to resubscribe")
    return {"message": "Successfully resubscribed"}


# ──────────────────────────────────────────────────────────────────────────────
# Sending — admin only
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/send-newsletter", response_model=NewsletterResult)
@limiter.limit(RATE_LIMITS["admin"])
def send_newsletter(
    request: Request,
    body: SendNewsletterRequest,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> NewsletterResult:
    """
    Email a published post to subscribers, sequentially.
    Per-recipient failures are counted in failedCount, never raised.
    """
    try:
        return newsletter.send_newsletter(db, body.post_id, body.subscriber_ids)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("send_newsletter", exc, "Failed to send newsletter")


@router.post("/send-custom-email")
@limiter.limit(RATE_LIMITS["admin"])
def send_custom_email(
    request: Request,
    body: CustomEmailRequest,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    try:
        return newsletter.send_custom_email(db, body.subject, body.content)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("send_custom_email", exc, "Failed to send email")


@router.post("/test-email")
@limiter.limit(RATE_LIMITS["admin"])
def send_test_email(
    request: Request,
    body: EmailTestRequest,
    _admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    try:
        return newsletter.send_test_email(body.to, body.subject, body.content)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        raise _internal_error("test_email", exc, str(exc) or "Failed to send test email")


@router.get("/test-email-config")
@limiter.limit(RATE_LIMITS["admin"])
def test_email_config(
    request: Request,
    _admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    return gmail_client.config_status()
