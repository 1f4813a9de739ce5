"""
tests/conftest.py — Shared pytest fixtures
In-memory SQLite, HTTP rate limiting off, no pause between newsletter sends,
and a fake Gmail transport that records every message.
"""
from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NEWSLETTER_SEND_DELAY_MS"] = "0"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SITE_URL"] = "https://blog.example.com"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from siquan.clients import gmail_client
from siquan.clients.database import Base, SessionLocal, engine, get_db
from siquan.clients.gmail_client import EmailSendResult
from siquan.core.auth import hash_password, issue_token
from siquan.entities import Post, Profile, Subscriber
from siquan.main import app
from siquan.utils.timezone import utc_now
from siquan.utils.validators import generate_unsubscribe_token

STRONG_PASSWORD = "Sq!uanBlog2024"


@pytest.fixture(autouse=True)
def _fresh_schema():
    from siquan import entities  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient whose requests share the test's session."""
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ──────────────────────────────────────────────────────────────────────────────
# Fake mail transport
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class Outbox:
    sent: list[dict] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    raise_for: set[str] = field(default_factory=set)

    def send(self, to_address, subject, html_body, plain_body=None) -> EmailSendResult:
        if to_address in self.raise_for:
            raise RuntimeError(f"transport exploded for {to_address}")
        if to_address in self.fail_for:
            return EmailSendResult(success=False, error="Gmail API 500")
        self.sent.append({
            "to": to_address,
            "subject": subject,
            "html": html_body,
            "plain": plain_body,
        })
        return EmailSendResult(success=True)

    @property
    def recipients(self) -> list[str]:
        return [message["to"] for message in self.sent]


@pytest.fixture
def outbox(monkeypatch) -> Outbox:
    box = Outbox()
    monkeypatch.setattr(gmail_client, "send_email", box.send)
    return box


# ──────────────────────────────────────────────────────────────────────────────
# Factories
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db):
    def _make(username: str = "writer", email: Optional[str] = None, is_admin: bool = False) -> Profile:
        profile = Profile(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(STRONG_PASSWORD),
            is_admin=is_admin,
        )
        db.add(profile)
        db.commit()
        return profile
    return _make


@pytest.fixture
def auth_headers(db):
    def _headers(profile: Profile) -> dict[str, str]:
        token, _row = issue_token(db, profile)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin(make_user) -> Profile:
    return make_user("siquan_admin", is_admin=True)


@pytest.fixture
def make_post(db):
    def _make(author: Profile, title: str = "Hello World", content: str = "First post body.", **fields) -> Post:
        now = utc_now()
        post = Post(
            author_id=author.id,
            title=title,
            slug=fields.pop("slug", f"{title.lower().replace(' ', '-')}-{len(title)}"),
            content=content,
            created_at=fields.pop("created_at", now),
            updated_at=now,
            **fields,
        )
        db.add(post)
        db.commit()
        return post
    return _make


@pytest.fixture
def make_subscriber(db):
    def _make(email: str, is_subscribed: bool = True) -> Subscriber:
        subscriber = Subscriber(
            email=email,
            is_subscribed=is_subscribed,
            unsubscribe_token=generate_unsubscribe_token(),
            unsubscribed_at=None if is_subscribed else utc_now() - timedelta(days=1),
        )
        db.add(subscriber)
        db.commit()
        return subscriber
    return _make
