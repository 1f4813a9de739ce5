"""
tests/test_admin.py — Admin role management and newsletter oversight
"""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select

from siquan.entities import AdminAction, EmailStat
from siquan.services import admin as admin_service
from siquan.utils.timezone import utc_now


def test_grant_admin_by_username(client, db, admin, make_user, auth_headers):
    member = make_user("member")

    response = client.post(
        "/api/admin/add-admin",
        json={"email": "Member@Example.com", "username": "member"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "Successfully granted admin privileges to member",
        "user": {"id": member.id, "username": "member", "email": "member@example.com"},
    }
    db.refresh(member)
    assert member.is_admin is True

    action = db.scalar(select(AdminAction))
    assert action.performed_by == admin.id
    assert action.target_user_id == member.id
    assert action.action_type == "grant_admin"


def test_grant_admin_errors(client, admin, make_user, auth_headers):
    headers = auth_headers(admin)

    missing = client.post("/api/admin/add-admin", json={"username": "member"}, headers=headers)
    assert missing.status_code == 400
    assert missing.json() == {"error": "Email and username are required"}

    unknown = client.post(
        "/api/admin/add-admin",
        json={"email": "ghost@example.com", "username": "ghost"},
        headers=headers,
    )
    assert unknown.status_code == 404
    assert unknown.json()["error"].startswith("User not found.")

    make_user("other_admin", is_admin=True)
    already = client.post(
        "/api/admin/add-admin",
        json={"email": "other_admin@example.com", "username": "other_admin"},
        headers=headers,
    )
    assert already.status_code == 400
    assert already.json() == {"error": "User is already an admin"}


def test_revoke_admin(client, db, admin, make_user, auth_headers):
    other = make_user("other_admin", is_admin=True)

    response = client.post(
        "/api/admin/revoke-admin",
        json={"userId": other.id},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Successfully revoked admin privileges from other_admin"}
    db.refresh(other)
    assert other.is_admin is False
    assert db.scalar(select(AdminAction)).action_type == "revoke_admin"


def test_revoke_admin_errors(client, admin, make_user, auth_headers):
    headers = auth_headers(admin)
    member = make_user("member")

    own = client.post("/api/admin/revoke-admin", json={"userId": admin.id}, headers=headers)
    assert own.status_code == 400
    assert own.json() == {"error": "You cannot revoke your own admin privileges"}

    not_admin = client.post("/api/admin/revoke-admin", json={"userId": member.id}, headers=headers)
    assert not_admin.json() == {"error": "User is not an admin"}

    unknown = client.post("/api/admin/revoke-admin", json={"userId": "nobody"}, headers=headers)
    assert unknown.status_code == 404

    missing = client.post("/api/admin/revoke-admin", json={}, headers=headers)
    assert missing.json() == {"error": "User ID is required"}


def test_admin_endpoints_reject_members(client, make_user, auth_headers):
    headers = auth_headers(make_user("member"))
    for path in ("/api/admin/admins", "/api/admin/subscribers", "/api/admin/verify-newsletter-system"):
        response = client.get(path, headers=headers)
        assert response.status_code == 403


def test_list_admins(client, admin, make_user, auth_headers):
    make_user("member")
    response = client.get("/api/admin/admins", headers=auth_headers(admin))
    assert [row["username"] for row in response.json()] == ["siquan_admin"]
    assert response.json()[0]["isAdmin"] is True


def test_subscriber_engagement_totals(db, make_user, make_post, make_subscriber):
    post = make_post(make_user("author"))
    engaged = make_subscriber("engaged@example.com")
    quiet = make_subscriber("quiet@example.com")
    quiet.subscribed_at = utc_now() - timedelta(days=3)
    now = utc_now()
    db.add_all([
        EmailStat(subscriber_id=engaged.id, post_id=post.id, tracking_token="a" * 48,
                  opened_at=now, clicked_at=now),
        EmailStat(subscriber_id=engaged.id, post_id=post.id, tracking_token="b" * 48,
                  opened_at=now),
    ])
    db.commit()

    rows = admin_service.list_subscribers(db)

    assert [row.email for row in rows] == ["engaged@example.com", "quiet@example.com"]
    assert (rows[0].emails_sent, rows[0].emails_opened, rows[0].emails_clicked) == (2, 2, 1)
    assert (rows[1].emails_sent, rows[1].emails_opened, rows[1].emails_clicked) == (0, 0, 0)


def test_verify_newsletter_system(client, admin, auth_headers, make_subscriber):
    make_subscriber("a@example.com")
    make_subscriber("b@example.com", is_subscribed=False)

    response = client.get("/api/admin/verify-newsletter-system", headers=auth_headers(admin))

    body = response.json()
    assert response.status_code == 200
    assert body["ready"] is False
    assert body["checks"]["database"] == {
        "connected": True,
        "subscribers": 2,
        "activeSubscribers": 1,
        "emailStats": 0,
        "postsEmailed": 0,
    }
    assert body["checks"]["gmail"]["isOAuth2Configured"] is False
    assert body["timestamp"].endswith("Z")
