"""
tests/test_login_guard.py — Failed-login lockout
"""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy import Delete, func, select

from siquan.entities import LoginAttempt
from siquan.services import login_guard
from siquan.utils.timezone import utc_now

EMAIL = "reader@example.com"


def _fail(db, email: str, times: int, at=None) -> None:
    for _ in range(times):
        login_guard.record_login_attempt(db, email, success=False, now=at)


def _count(db, success: bool) -> int:
    return db.scalar(
        select(func.count(LoginAttempt.id)).where(LoginAttempt.success.is_(success))
    )


def test_fresh_email_is_allowed_with_full_budget(db):
    """A new email has the whole failure budget."""
    decision = login_guard.check_rate_limit(db, EMAIL)
    assert decision.allowed is True
    assert decision.attempts_remaining == 5


def test_attempts_remaining_counts_down(db):
    _fail(db, EMAIL, 3)
    decision = login_guard.check_rate_limit(db, EMAIL)
    assert decision.allowed is True
    assert decision.attempts_remaining == 2


def test_five_failures_within_window_deny(db):
    """Lock-out lasts until the oldest failure leaves the window."""
    now = utc_now()
    _fail(db, EMAIL, 5, at=now - timedelta(minutes=2))

    decision = login_guard.check_rate_limit(db, EMAIL, now=now)

    assert decision.allowed is False
    assert decision.reason == "rate_limit_exceeded"
    assert decision.attempts_remaining == 0
    assert decision.minutes_remaining == 13
    assert "13 分鐘" in decision.message
    assert decision.unlock_at.endswith("Z")


def test_minutes_remaining_is_never_below_one(db):
    now = utc_now()
    _fail(db, EMAIL, 5, at=now - timedelta(minutes=14, seconds=59))

    decision = login_guard.check_rate_limit(db, EMAIL, now=now)

    assert decision.allowed is False
    assert decision.minutes_remaining >= 1


def test_failures_outside_window_are_ignored(db):
    now = utc_now()
    _fail(db, EMAIL, 5, at=now - timedelta(minutes=16))
    decision = login_guard.check_rate_limit(db, EMAIL, now=now)
    assert decision.allowed is True


def test_email_is_case_insensitive(db):
    _fail(db, "Reader@Example.COM", 5)
    assert login_guard.check_rate_limit(db, EMAIL).allowed is False


def test_success_clears_prior_failures(db):
    """A successful login wipes the email's recent failures."""
    _fail(db, EMAIL, 5)
    assert login_guard.check_rate_limit(db, EMAIL).allowed is False

    cleared = login_guard.record_login_attempt(db, EMAIL, success=True)

    assert cleared == 5
    assert _count(db, success=False) == 0
    assert _count(db, success=True) == 1
    assert login_guard.check_rate_limit(db, EMAIL).allowed is True


def test_other_emails_are_not_affected(db):
    _fail(db, EMAIL, 5)
    assert login_guard.check_rate_limit(db, "someone@example.com").allowed is True


def test_storage_error_fails_open(db, monkeypatch):
    """A broken store must never lock users out."""
    def _broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(login_guard, "recent_failed_attempts", _broken)
    decision = login_guard.check_rate_limit(db, EMAIL)
    assert decision.allowed is True


def test_fail_open_rolls_back_the_session(db, monkeypatch):
    """The session stays usable for the credential lookup that follows."""
    rollbacks = []
    original_rollback = db.rollback

    def _broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    def _rollback():
        rollbacks.append(True)
        original_rollback()

    monkeypatch.setattr(login_guard, "recent_failed_attempts", _broken)
    monkeypatch.setattr(db, "rollback", _rollback)

    assert login_guard.check_rate_limit(db, EMAIL).allowed is True
    assert rollbacks == [True]
    assert _count(db, False) == 0


def _break_deletes(db, monkeypatch) -> None:
    original_execute = db.execute

    def _execute(statement, *args, **kwargs):
        if isinstance(statement, Delete):
            raise RuntimeError("delete failed")
        return original_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", _execute)


def test_success_is_kept_when_clearing_failures_breaks(db, monkeypatch):
    _fail(db, EMAIL, 2)
    _break_deletes(db, monkeypatch)

    cleared = login_guard.record_login_attempt(db, EMAIL, success=True)

    assert cleared == 0
    assert _count(db, True) == 1
    assert _count(db, False) == 2


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def test_check_endpoint_requires_email(client):
    response = client.post("/api/auth/check-rate-limit", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "電子郵件地址是必需的"}


def test_check_endpoint_allows(client):
    response = client.post("/api/auth/check-rate-limit", json={"email": EMAIL})
    assert response.status_code == 200
    assert response.json() == {"allowed": True, "attemptsRemaining": 5}


def test_check_endpoint_returns_429_when_locked(client):
    for _ in range(5):
        client.post("/api/auth/record-login-attempt", json={"email": EMAIL, "success": False})

    response = client.post("/api/auth/check-rate-limit", json={"email": EMAIL})

    assert response.status_code == 429
    body = response.json()
    assert body["allowed"] is False
    assert body["reason"] == "rate_limit_exceeded"
    assert body["attemptsRemaining"] == 0
    assert body["minutesRemaining"] >= 1
    assert "unlockAt" in body


def test_record_endpoint_stores_client_ip(client, db):
    response = client.post(
        "/api/auth/record-login-attempt",
        json={"email": EMAIL},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest"},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}

    attempt = db.scalar(select(LoginAttempt))
    assert attempt.ip_address == "203.0.113.7"
    assert attempt.user_agent == "pytest"
    assert attempt.success is False


def test_record_endpoint_requires_email(client):
    response = client.post("/api/auth/record-login-attempt", json={"success": True})
    assert response.status_code == 400


def test_record_endpoint_reports_storage_failure(client, monkeypatch):
    from siquan.core.errors import StorageError

    def _broken(*args, **kwargs):
        raise StorageError("無法記錄登入嘗試")

    monkeypatch.setattr(login_guard, "record_login_attempt", _broken)
    response = client.post("/api/auth/record-login-attempt", json={"email": EMAIL})
    assert response.status_code == 500
    assert response.json() == {"error": "無法記錄登入嘗試"}


def test_record_endpoint_hides_unexpected_errors(client, monkeypatch):
    def _broken(*args, **kwargs):
        raise ValueError("boom")

    monkeypatch.setattr(login_guard, "record_login_attempt", _broken)
    response = client.post("/api/auth/record-login-attempt", json={"email": EMAIL})
    assert response.status_code == 500
    assert response.json() == {"error": "伺服器錯誤"}


def test_record_endpoint_succeeds_when_clearing_failures_breaks(client, db, monkeypatch):
    _break_deletes(db, monkeypatch)

    response = client.post("/api/auth/record-login-attempt", json={"email": "a@b.co", "success": True})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert _count(db, True) == 1
