"""
siquan/services/email_service.py — Email rendering
Jinja2 templates for the newsletter, announcement and test emails, plus
the tracking URL builders the newsletter embeds.
"""
from __future__ import annotations

import urllib.parse
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from loguru import logger
from markupsafe import Markup, escape

from siquan.config import get_settings
from siquan.utils.text import make_excerpt, strip_html_tags
from siquan.utils.timezone import current_year, format_display_date, to_site_time, utc_now

settings = get_settings()

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"


def _get_jinja_env() -> Environment:
    """Build Jinja2 environment for email templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Tracking URLs
# ──────────────────────────────────────────────────────────────────────────────

def tracking_pixel_url(tracking_token: str, base_url: str) -> str:
    return f"{base_url}/api/track/open?token={tracking_token}"


def tracked_link(url: str, tracking_token: str, base_url: str) -> str:
    quoted = urllib.parse.quote(url, safe="")
    return f"{base_url}/api/track/click?token={tracking_token}&url={quoted}"


def unsubscribe_url(unsubscribe_token: str, base_url: str) -> str:
    return f"{base_url}/unsubscribe?token={unsubscribe_token}"


def post_url(slug: str, base_url: str) -> str:
    return f"{base_url}/post/{slug}"


# ──────────────────────────────────────────────────────────────────────────────
# Newsletter
# ──────────────────────────────────────────────────────────────────────────────

def build_newsletter_context(
    title: str,
    content: str,
    slug: str,
    author: str,
    created_at: datetime,
    tracking_token: str,
    unsubscribe_token: str,
    base_url: str,
    cover_image: Optional[str] = None,
) -> dict[str, Any]:
    """Template context for one recipient; tracking links are per-recipient."""
    return {
        "site_name": settings.site_name,
        "title": title,
        "author": author,
        "date": format_display_date(created_at),
        "excerpt": make_excerpt(strip_html_tags(content), settings.newsletter_excerpt_chars),
        "cover_image": cover_image,
        "post_url": post_url(slug, base_url),
        "tracked_post_url": tracked_link(post_url(slug, base_url), tracking_token, base_url),
        "unsubscribe_url": unsubscribe_url(unsubscribe_token, base_url),
        "tracking_pixel_url": tracking_pixel_url(tracking_token, base_url),
        "year": current_year(),
    }


def newsletter_subject(title: str) -> str:
    return f"New Story: {title}"


def generate_newsletter_html(context: dict) -> str:
    """Render the HTML newsletter from its Jinja2 template."""
    env = _get_jinja_env()
    try:
        template = env.get_template("newsletter_email.html")
        return template.render(**context)
    except Exception as exc:
        logger.error(f"Newsletter HTML template render failed: {exc}")
        # Minimal fallback HTML; still carries the tracking pixel and unsubscribe link
        return (
            f"<html><body><h2>{escape(context['title'])}</h2>"
            f"<p>{escape(context['excerpt'])}</p>"
            f"<p><a href=\"{escape(context['tracked_post_url'])}\">Read Full Story</a></p>"
            f"<p><a href=\"{escape(context['unsubscribe_url'])}\">Unsubscribe</a></p>"
            f"<img src=\"{escape(context['tracking_pixel_url'])}\" width=\"1\" height=\"1\" alt=\"\">"
            f"</body></html>"
        )


def generate_newsletter_plain(context: dict) -> str:
    """Render the plain-text newsletter from its Jinja2 template."""
    env = _get_jinja_env()
    try:
        template = env.get_template("newsletter_email.txt")
        return template.render(**context)
    except Exception as exc:
        logger.error(f"Newsletter plain template render failed: {exc}")
        return "\n\n".join([
            context["title"],
            context["excerpt"],
            f"Read the full story: {context['tracked_post_url']}",
            f"Unsubscribe: {context['unsubscribe_url']}",
        ])


# ──────────────────────────────────────────────────────────────────────────────
# Announcement & test emails
# ──────────────────────────────────────────────────────────────────────────────

def _newlines_to_br(content: str) -> Markup:
    return Markup("<br>").join(escape(line) for line in content.split("\n"))


def generate_custom_email_html(content: str) -> str:
    env = _get_jinja_env()
    template = env.get_template("custom_email.html")
    return template.render(
        body=_newlines_to_br(content),
        site_name=settings.site_name,
        site_url=settings.site_url,
    )


def tagged_test_subject(subject: str) -> str:
    return f"[TEST] {subject}"


def generate_test_email_html(subject: str, content: str) -> str:
    env = _get_jinja_env()
    template = env.get_template("test_email.html")
    return template.render(
        subject=subject,
        body=_newlines_to_br(content),
        sent_at=to_site_time(utc_now()).strftime("%Y-%m-%d %H:%M:%S %Z"),
        site_name=settings.site_name,
        year=current_year(),
    )
