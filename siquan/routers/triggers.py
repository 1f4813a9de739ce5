"""
siquan/routers/triggers.py — Cron-triggered endpoints
Protected by the X-Cron-Secret header. The external scheduler calls
/trigger/auto-publish every few minutes.
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.core import logging as app_logging
from siquan.core.auth import verify_cron_secret
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.models import AutoPublishResult
from siquan.services import publishing

router = APIRouter()


@router.post("/auto-publish")
@limiter.limit(RATE_LIMITS["triggers"])
def trigger_auto_publish(
    request: Request,
    db: Session = Depends(get_db),
    _auth: bool = Depends(verify_cron_secret),
) -> JSONResponse:
    """Publish every scheduled post whose publish time has passed."""
    try:
        result = publishing.auto_publish_scheduled_posts(db)
    except Exception as exc:
        db.rollback()
        app_logging.log_error("triggers", "auto_publish", exc)
        failed = AutoPublishResult(success=False, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failed.model_dump(mode="json", exclude_none=True),
        )
    return JSONResponse(content=result.model_dump(mode="json", exclude_none=True))
