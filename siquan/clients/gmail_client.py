"""
siquan/clients/gmail_client.py — Gmail API client
OAuth2 refresh-token credentials, one API call per message.
Also hosts the one-time consent flow that mints the refresh token.
"""
from __future__ import annotations

import base64
import email.mime.multipart
import email.mime.text
import email.utils
import time
from dataclasses import dataclass
from typing import Any, Optional

from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from loguru import logger
from requests_oauthlib import OAuth2Session

from siquan.config import get_settings
from siquan.core import logging as app_logging

settings = get_settings()

TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTHORIZATION_URI = "https://accounts.google.com/o/oauth2/auth"

SEND_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]

CONSENT_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.modify",
]


class GmailNotConfiguredError(RuntimeError):
    pass


@dataclass
class EmailSendResult:
    success: bool
    error: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Credentials management
# ──────────────────────────────────────────────────────────────────────────────

def is_configured() -> bool:
    return settings.gmail_configured


def config_status() -> dict[str, Any]:
    """Presence flags for each Gmail setting; never echoes secrets."""
    return {
        "hasUser": bool(settings.gmail_user),
        "hasClientId": bool(settings.gmail_client_id),
        "hasClientSecret": bool(settings.gmail_client_secret),
        "hasRefreshToken": bool(settings.gmail_refresh_token),
        "hasFromName": bool(settings.gmail_from_name),
        "gmailUser": settings.gmail_user or None,
        "fromName": settings.from_name,
        "isOAuth2Configured": settings.gmail_configured,
    }


def _build_credentials() -> Credentials:
    if not is_configured():
        raise GmailNotConfiguredError(
            "Gmail OAuth2 credentials not configured. Required: GMAIL_USER, "
            "GMAIL_CLIENT_ID, GMAIL_CLIENT_SECRET, GMAIL_REFRESH_TOKEN"
        )
    return Credentials(
        token=None,
        refresh_token=settings.gmail_refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.gmail_client_id,
        client_secret=settings.gmail_client_secret,
        scopes=SEND_SCOPES,
    )


def _get_gmail_service():
    """Build authenticated Gmail API service."""
    creds = _build_credentials()
    if not creds.valid or creds.expired:
        creds.refresh(GoogleRequest())
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


# ──────────────────────────────────────────────────────────────────────────────
# Sending
# ──────────────────────────────────────────────────────────────────────────────

def build_message(
    to_address: str,
    subject: str,
    html_body: str,
    plain_body: Optional[str] = None,
) -> str:
    """Build the base64url raw message the Gmail API expects."""
    msg = email.mime.multipart.MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = email.utils.formataddr((settings.from_name, settings.gmail_user))
    msg["To"] = to_address

    # Plain-text part first (fallback for basic clients)
    if plain_body:
        msg.attach(email.mime.text.MIMEText(plain_body, "plain", "utf-8"))
    msg.attach(email.mime.text.MIMEText(html_body, "html", "utf-8"))

    return base64.urlsafe_b64encode(msg.as_bytes()).decode("utf-8")


def send_email(
    to_address: str,
    subject: str,
    html_body: str,
    plain_body: Optional[str] = None,
) -> EmailSendResult:
    """
    Send one email via the Gmail API.
    Single attempt; callers decide what a failure means. Never raises.
    """
    start = time.monotonic()
    try:
        raw = build_message(to_address, subject, html_body, plain_body)
        service = _get_gmail_service()
        service.users().messages().send(userId="me", body={"raw": raw}).execute()
    except Exception as exc:
        app_logging.log_email_send(
            to_address, subject, success=False,
            latency_ms=(time.monotonic() - start) * 1000,
            error=str(exc),
        )
        return EmailSendResult(success=False, error=str(exc))

    app_logging.log_email_send(
        to_address, subject, success=True,
        latency_ms=(time.monotonic() - start) * 1000,
    )
    return EmailSendResult(success=True)


# ──────────────────────────────────────────────────────────────────────────────
# Consent flow — mints GMAIL_REFRESH_TOKEN
# ──────────────────────────────────────────────────────────────────────────────

def consent_redirect_uri() -> str:
    return f"{settings.site_url}/api/auth/gmail/callback"


def missing_consent_settings() -> dict[str, bool]:
    return {
        "hasClientId": bool(settings.gmail_client_id),
        "hasClientSecret": bool(settings.gmail_client_secret),
        "hasSiteUrl": bool(settings.site_url),
    }


def _consent_session() -> OAuth2Session:
    return OAuth2Session(
        settings.gmail_client_id,
        scope=CONSENT_SCOPES,
        redirect_uri=consent_redirect_uri(),
    )


def build_authorization_url() -> str:
    """Offline access + forced consent so Google always returns a refresh token."""
    authorization_url, _state = _consent_session().authorization_url(
        AUTHORIZATION_URI,
        access_type="offline",
        prompt="consent",
    )
    return authorization_url


def exchange_code(code: str) -> dict[str, Any]:
    token = _consent_session().fetch_token(
        TOKEN_URI,
        code=code,
        client_secret=settings.gmail_client_secret,
    )
    logger.info("Gmail consent code exchanged for tokens.")
    scope = token.get("scope")
    if isinstance(scope, list):
        scope = " ".join(scope)
    return {
        "refresh_token": token.get("refresh_token"),
        "scopes": scope,
    }
