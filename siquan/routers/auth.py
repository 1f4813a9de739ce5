"""
siquan/routers/auth.py — Account and login-guard endpoints
Also hosts the one-off Gmail consent flow that mints GMAIL_REFRESH_TOKEN.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from siquan.clients import gmail_client
from siquan.clients.database import get_db
from siquan.core import logging as app_logging
from siquan.core.auth import get_current_user
from siquan.core.errors import ServiceError
from siquan.core.rate_limiter import RATE_LIMITS, limiter
from siquan.entities import Profile
from siquan.models import (
    AuthResponse,
    LoginRequest,
    PasswordCheckRequest,
    ProfileOut,
    RateLimitCheckRequest,
    RecordLoginAttemptRequest,
    SignupRequest,
    dump,
)
from siquan.services import accounts, login_guard
from siquan.utils.password_validator import (
    get_password_strength,
    strength_percentage,
    validate_password,
)
from siquan.utils.validators import client_ip, require_text

router = APIRouter()

EMAIL_REQUIRED = "電子郵件地址是必需的"


# ──────────────────────────────────────────────────────────────────────────────
# Login guard — called by the login form around each sign-in attempt
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/check-rate-limit")
@limiter.limit(RATE_LIMITS["auth"])
def check_rate_limit(
    request: Request,
    body: RateLimitCheckRequest,
    db: Session = Depends(get_db),
) -> JSONResponse:
    """200 with attemptsRemaining, or 429 with the lockout details."""
    email = require_text(body.email)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMAIL_REQUIRED)

    try:
        decision = login_guard.check_rate_limit(db, email)
    except Exception as exc:
        app_logging.log_error("auth", "check_rate_limit", exc)
        return JSONResponse(status_code=status.HTTP_200_OK, content={"allowed": True})

    status_code = status.HTTP_200_OK if decision.allowed else status.HTTP_429_TOO_MANY_REQUESTS
    return JSONResponse(status_code=status_code, content=dump(decision))


@router.post("/record-login-attempt")
@limiter.limit(RATE_LIMITS["auth"])
def record_login_attempt(
    request: Request,
    body: RecordLoginAttemptRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    email = require_text(body.email)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMAIL_REQUIRED)

    try:
        login_guard.record_login_attempt(
            db,
            email,
            body.success,
            ip_address=client_ip(request.headers),
            user_agent=request.headers.get("user-agent") or "unknown",
        )
    except ServiceError as exc:
        raise exc.to_http()
    except Exception as exc:
        app_logging.log_error("auth", "record_login_attempt", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="伺服器錯誤",
        )
    return {"success": True}


# ──────────────────────────────────────────────────────────────────────────────
# Accounts
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["auth"])
def signup(
    request: Request,
    body: SignupRequest,
    db: Session = Depends(get_db),
) -> AuthResponse:
    return accounts.signup(db, body.email, body.username, body.password)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(RATE_LIMITS["auth"])
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
):
    try:
        return accounts.login(
            db,
            body.email,
            body.password,
            ip_address=client_ip(request.headers),
            user_agent=request.headers.get("user-agent") or "unknown",
        )
    except accounts.LoginLocked as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content=dump(exc.decision),
        )


@router.get("/me", response_model=ProfileOut)
def me(user: Profile = Depends(get_current_user)) -> ProfileOut:
    return ProfileOut.model_validate(user)


@router.post("/password-strength")
@limiter.limit(RATE_LIMITS["auth"])
def password_strength(request: Request, body: PasswordCheckRequest) -> dict[str, Any]:
    """Live strength meter for the signup form."""
    result = validate_password(body.password or "", email=body.email, username=body.username)
    level = get_password_strength(result.score)
    return {
        "isValid": result.is_valid,
        "score": result.score,
        "label": level.label,
        "description": level.description,
        "percentage": strength_percentage(result.score),
        "feedback": result.feedback,
        "requirements": result.requirements,
    }


# ──────────────────────────────────────────────────────────────────────────────
# Gmail consent flow
# ──────────────────────────────────────────────────────────────────────────────

def _missing_env_response() -> Optional[JSONResponse]:
    details = gmail_client.missing_consent_settings()
    if all(details.values()):
        return None
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Missing required env vars", "details": details},
    )


@router.get("/gmail/initiate")
def gmail_initiate():
    missing = _missing_env_response()
    if missing is not None:
        return missing
    return RedirectResponse(gmail_client.build_authorization_url())


@router.get("/gmail/callback")
def gmail_callback(code: Optional[str] = None):
    missing = _missing_env_response()
    if missing is not None:
        return missing
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code")

    try:
        tokens = gmail_client.exchange_code(code)
    except Exception as exc:
        app_logging.log_error("auth", "gmail_callback", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to exchange code for tokens",
        )

    return {
        "message": "Copy this refresh token into GMAIL_REFRESH_TOKEN and redeploy",
        "refresh_token": tokens["refresh_token"],
        "note": "If refresh_token is null, re-initiate with prompt=consent and access_type=offline.",
        "scopes": tokens["scopes"],
    }
