"""
siquan/routers/admin.py — Admin-only endpoints
Role management, subscriber overview, scheduled-post queue and the
newsletter readiness check.
"""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core import logging as app_logging
from siquan.core.auth import require_admin
from siquan.core.errors import ServiceError
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import AddAdminRequest, PostOut, ProfileOut, RevokeAdminRequest, SubscriberOut
from siquan.services import admin as admin_service
from siquan.services import posts as post_service

router = APIRouter()


@router.post("/add-admin")
@limiter.limit(RATE_LIMITS["admin"])
def add_admin(
    request: Request,
    body: AddAdminRequest,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    try:
        return admin_service.grant_admin(db, admin, body.email, body.username)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        app_logging.log_error("admin", "add_admin", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


@router.post("/revoke-admin")
@limiter.limit(RATE_LIMITS["admin"])
def revoke_admin(
    request: Request,
    body: RevokeAdminRequest,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    try:
        return admin_service.revoke_admin(db, admin, body.user_id)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        app_logging.log_error("admin", "revoke_admin", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


@router.get("/admins", response_model=list[ProfileOut])
@limiter.limit(RATE_LIMITS["admin"])
def list_admins(
    request: Request,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> list[ProfileOut]:
    return admin_service.list_admins(db)


@router.get("/subscribers", response_model=list[SubscriberOut])
@limiter.limit(RATE_LIMITS["admin"])
def list_subscribers(
    request: Request,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> list[SubscriberOut]:
    return admin_service.list_subscribers(db)


@router.get("/scheduled-posts", response_model=list[PostOut])
@limiter.limit(RATE_LIMITS["admin"])
def scheduled_posts(
    request: Request,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> list[PostOut]:
    return [post_service.to_post_out(post) for post in post_service.list_scheduled(db)]


@router.get("/verify-newsletter-system")
@limiter.limit(RATE_LIMITS["admin"])
def verify_newsletter_system(
    request: Request,
    db: Session = Depends(get_db),
    _admin: Profile = Depends(require_admin),
) -> dict[str, Any]:
    try:
        return admin_service.verify_newsletter_system(db)
    except Exception as exc:
        app_logging.log_error("admin", "verify_newsletter_system", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify newsletter system",
        )
