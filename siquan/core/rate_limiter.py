"""
siquan/core/rate_limiter.py — slowapi rate limiting configuration
HTTP-level request throttling per client address. The login lockout
(failed attempts per email) lives in siquan.services.login_guard.
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from siquan.config import get_settings

# Single shared limiter instance — imported by main.py and routers
limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)

# ── Rate limits per endpoint category ────────────────────────────────────────
# These string values are used as decorators on individual route handlers.

RATE_LIMITS = {
    # Login, signup and login-guard endpoints
    "auth": "20/minute",
    # Public subscribe / unsubscribe forms
    "subscribe": "10/minute",
    # Open pixels and click redirects fire from mail clients in bursts
    "tracking": "120/minute",
    # Admin mail and role endpoints
    "admin": "30/minute",
    # Post, group and library reads/writes
    "content": "60/minute",
    # HTML pages
    "pages": "60/minute",
    # Cron trigger endpoints
    "triggers": "10/minute",
    # Health check / ping
    "health": "30/minute",
}
