"""
siquan/routers/tracking.py — Newsletter open pixel, click redirect, post views
Mail clients hit these unauthenticated; the pixel never fails visibly.
"""
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core import logging as app_logging
from siquan.core.errors import ServiceError
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.models import ViewRequest
from siquan.services import tracking

router = APIRouter()


def _pixel() -> Response:
    return Response(
        content=tracking.TRANSPARENT_GIF,
        media_type="image/gif",
        headers=tracking.NO_CACHE_HEADERS,
    )


def _is_redirectable(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


@router.get("/open")
@limiter.limit(RATE_LIMITS["tracking"])
def track_open(
    request: Request,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
) -> Response:
    if not token:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)
    try:
        tracking.record_open(db, token)
    except Exception as exc:
        app_logging.log_error("tracking", "open", exc)
    return _pixel()


@router.get("/click")
@limiter.limit(RATE_LIMITS["tracking"])
def track_click(
    request: Request,
    token: Optional[str] = None,
    url: Optional[str] = None,
    db: Session = Depends(get_db),
) -> RedirectResponse:
    home = RedirectResponse("/", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    if not token or not url or not _is_redirectable(url):
        return home
    try:
        tracking.record_click(db, token)
    except Exception as exc:
        app_logging.log_error("tracking", "click", exc)
        return home
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.post("/view")
@limiter.limit(RATE_LIMITS["tracking"])
def track_view(
    request: Request,
    body: ViewRequest,
    db: Session = Depends(get_db),
) -> dict:
    try:
        view_count = tracking.increment_view_count(db, body.post_id)
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        app_logging.log_error("tracking", "view", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to track view",
        )
    return {"success": True, "viewCount": view_count}
