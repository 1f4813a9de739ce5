"""
siquan/utils/validators.py — Request field normalisation and token helpers
"""
from __future__ import annotations

import hashlib
import secrets
from typing import Any, Optional


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_plausible_email(email: Optional[str]) -> bool:
    """The only email check the platform makes: non-empty and contains '@'."""
    return bool(email) and "@" in email


def require_text(value: Any) -> Optional[str]:
    """Return stripped text, or None when missing/blank/not a string."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def generate_unsubscribe_token() -> str:
    """32 random bytes, hex encoded (64 chars)."""
    return secrets.token_hex(32)


def generate_tracking_token() -> str:
    """24 random bytes, hex encoded (48 chars)."""
    return secrets.token_hex(24)


def generate_auth_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 of a bearer token; only the hash is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def client_ip(headers: Any) -> str:
    """
    First address of X-Forwarded-For, then X-Real-IP, else 'unknown'.
    `headers` is any mapping with .get (Starlette Headers, dict).
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or "unknown"
