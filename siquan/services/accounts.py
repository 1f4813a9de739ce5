"""
siquan/services/accounts.py — Signup and password login
Login consults the login guard before checking the password and records
the outcome afterwards, so lockouts apply to this endpoint as well.
"""
from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from siquan.core.auth import hash_password, issue_token, verify_password
from siquan.core.errors import ServiceError, ValidationFailed
from siquan.entities import Profile
from siquan.models import AuthResponse, ProfileOut, RateLimitDecision
from siquan.services import login_guard
from siquan.utils.password_validator import validate_password
from siquan.utils.validators import is_plausible_email, normalize_email, require_text

USERNAME_MIN_CHARS = 2
USERNAME_MAX_CHARS = 50


class LoginLocked(ServiceError):
    status_code = 429

    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__(decision.message or "Too many failed attempts")
        self.decision = decision


class InvalidCredentials(ServiceError):
    status_code = 401


def _auth_response(session: Session, profile: Profile) -> AuthResponse:
    token, row = issue_token(session, profile)
    return AuthResponse(
        access_token=token,
        expires_at=row.expires_at,
        user=ProfileOut.model_validate(profile),
    )


def signup(
    session: Session,
    email: Optional[str],
    username: Optional[str],
    password: Optional[str],
) -> AuthResponse:
    username = require_text(username)
    if not is_plausible_email(email) or not username or not password:
        raise ValidationFailed("Email, username and password are required")
    if not USERNAME_MIN_CHARS <= len(username) <= USERNAME_MAX_CHARS:
        raise ValidationFailed(
            f"Username must be {USERNAME_MIN_CHARS}-{USERNAME_MAX_CHARS} characters"
        )

    email = normalize_email(email)
    check = validate_password(password, email=email, username=username)
    if not check.is_valid:
        raise ValidationFailed("；".join(check.feedback))

    if session.scalar(select(Profile.id).where(Profile.email == email)):
        raise ValidationFailed("Email already registered")
    if session.scalar(select(Profile.id).where(Profile.username == username)):
        raise ValidationFailed("Username already taken")

    profile = Profile(
        email=email,
        username=username,
        password_hash=hash_password(password),
    )
    session.add(profile)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race against a concurrent signup with the same identity.
        session.rollback()
        raise ValidationFailed("Email or username already registered")

    logger.info(f"New profile {profile.id} ({username}).")
    return _auth_response(session, profile)


def login(
    session: Session,
    email: Optional[str],
    password: Optional[str],
    ip_address: str = "unknown",
    user_agent: str = "unknown",
) -> AuthResponse:
    if not is_plausible_email(email) or not password:
        raise ValidationFailed("Email and password are required")
    email = normalize_email(email)

    decision = login_guard.check_rate_limit(session, email)
    if not decision.allowed:
        raise LoginLocked(decision)

    profile = session.scalar(select(Profile).where(Profile.email == email))
    success = profile is not None and verify_password(password, profile.password_hash)
    login_guard.record_login_attempt(
        session, email, success, ip_address=ip_address, user_agent=user_agent
    )
    if not success:
        raise InvalidCredentials("Invalid email or password")

    return _auth_response(session, profile)
