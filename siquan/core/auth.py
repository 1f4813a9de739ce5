"""
siquan/core/auth.py — Authentication & Authorization
Bearer tokens for users and admins, X-Cron-Secret for trigger endpoints,
bcrypt password hashing through passlib.
"""
from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from siquan.clients.database import get_db
from siquan.config import get_settings
from siquan.entities import AuthToken, Profile
from siquan.utils.timezone import utc_now
from siquan.utils.validators import generate_auth_token, hash_token

bearer = HTTPBearer(auto_error=False)
settings = get_settings()


# ──────────────────────────────────────────────────────────────────────────────
# Password hashing
# ──────────────────────────────────────────────────────────────────────────────

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.password_hash_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    """False for a wrong password and for a stored value passlib can't identify."""
    if not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


# ──────────────────────────────────────────────────────────────────────────────
# Bearer tokens — only the SHA-256 of a token is stored
# ──────────────────────────────────────────────────────────────────────────────

def issue_token(session: Session, profile: Profile) -> tuple[str, AuthToken]:
    token = generate_auth_token()
    now = utc_now()
    row = AuthToken(
        token_hash=hash_token(token),
        profile_id=profile.id,
        created_at=now,
        expires_at=now + timedelta(days=settings.auth_token_ttl_days),
    )
    session.add(row)
    session.commit()
    return token, row


def resolve_token(session: Session, token: str) -> Optional[Profile]:
    row = session.get(AuthToken, hash_token(token))
    if row is None:
        return None
    if row.expires_at <= utc_now():
        session.delete(row)
        session.commit()
        return None
    return row.profile


# ──────────────────────────────────────────────────────────────────────────────
# FastAPI dependencies
# ──────────────────────────────────────────────────────────────────────────────

async def verify_cron_secret(
    x_cron_secret: Optional[str] = Header(None, alias="X-Cron-Secret"),
) -> bool:
    """Validate the X-Cron-Secret header on trigger endpoints."""
    if not x_cron_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Cron-Secret header required",
        )
    if not settings.cron_secret or not secrets.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
    return True


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Optional[Profile]:
    if credentials is None:
        return None
    return resolve_token(db, credentials.credentials)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Profile:
    """Require a valid bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    profile = resolve_token(db, credentials.credentials)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return profile


def require_admin(user: Profile = Depends(get_current_user)) -> Profile:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Admin access required",
        )
    return user
