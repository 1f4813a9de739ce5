"""
siquan/routers/pages.py — Server-rendered HTML pages
Post reading page and the unsubscribe landing page linked from newsletters.
"""
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.config import get_settings
from siquan.core import logging as app_logging
from siquan.core.errors import NotFoundError, ServiceError
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.services import posts as post_service
from siquan.services import subscriptions
from siquan.utils.text import calculate_word_count, render_post_body
from siquan.utils.timezone import current_year, format_display_date

router = APIRouter()
settings = get_settings()

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def _base_context() -> dict:
    return {
        "site_name": settings.site_name,
        "site_url": settings.site_url,
        "year": current_year(),
    }


@router.get("/post/{slug}", response_class=HTMLResponse)
@limiter.limit(RATE_LIMITS["pages"])
def post_page(request: Request, slug: str, db: Session = Depends(get_db)) -> HTMLResponse:
    try:
        post = post_service.get_post_by_slug(db, slug)
    except NotFoundError:
        return templates.TemplateResponse(
            request,
            "pages/not_found.html",
            {**_base_context(), "message": "Post not found"},
            status_code=404,
        )

    context = {
        **_base_context(),
        "post": post,
        "author_name": post.author.username if post.author else "Anonymous",
        "published_on": format_display_date(post.created_at),
        "word_count": calculate_word_count(post.content),
        "body_html": render_post_body(post.content),
    }
    return templates.TemplateResponse(request, "pages/post.html", context)


@router.get("/unsubscribe", response_class=HTMLResponse)
@limiter.limit(RATE_LIMITS["pages"])
def unsubscribe_page(
    request: Request,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
) -> HTMLResponse:
    """Unsubscribes on load, then offers a one-click resubscribe."""
    state = "success"
    try:
        subscriptions.unsubscribe(db, token)
    except ServiceError:
        state = "invalid"
    except Exception as exc:
        app_logging.log_error("pages", "unsubscribe", exc)
        state = "error"

    return templates.TemplateResponse(
        request,
        "pages/unsubscribe.html",
        {**_base_context(), "state": state, "token": token or ""},
    )

