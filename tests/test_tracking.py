"""
tests/test_tracking.py — Open pixel, click redirect, view counter
"""
from __future__ import annotations

import pytest

from siquan.entities import EmailStat
from siquan.services import tracking


@pytest.fixture
def stat(db, make_user, make_post, make_subscriber):
    post = make_post(make_user("author"), is_published=True)
    subscriber = make_subscriber("reader@example.com")
    row = EmailStat(subscriber_id=subscriber.id, post_id=post.id, tracking_token="t" * 48)
    db.add(row)
    db.commit()
    return row


def test_first_open_is_stamped_once(db, stat):
    assert tracking.record_open(db, stat.tracking_token) is True
    first = stat.opened_at

    assert tracking.record_open(db, stat.tracking_token) is False
    db.refresh(stat)
    assert stat.opened_at == first


def test_first_click_is_stamped_once(db, stat):
    assert tracking.record_click(db, stat.tracking_token) is True
    assert tracking.record_click(db, stat.tracking_token) is False
    assert stat.clicked_at is not None


def test_unknown_token_is_ignored(db):
    assert tracking.record_open(db, "unknown") is False
    assert tracking.record_click(db, "unknown") is False


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def test_open_pixel(client, db, stat):
    response = client.get("/api/track/open", params={"token": stat.tracking_token})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/gif"
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert response.content == tracking.TRANSPARENT_GIF
    db.refresh(stat)
    assert stat.opened_at is not None


def test_open_pixel_for_unknown_token_still_served(client):
    response = client.get("/api/track/open", params={"token": "unknown"})
    assert response.status_code == 200
    assert response.content == tracking.TRANSPARENT_GIF


def test_open_without_token(client):
    response = client.get("/api/track/open")
    assert response.status_code == 400
    assert response.content == b""


def test_click_redirects_to_target(client, db, stat):
    target = "https://blog.example.com/post/hello-world-11"
    response = client.get(
        "/api/track/click",
        params={"token": stat.tracking_token, "url": target},
        follow_redirects=False,
    )

    assert response.status_code == 307
    assert response.headers["location"] == target
    db.refresh(stat)
    assert stat.clicked_at is not None


@pytest.mark.parametrize("params", [
    {"url": "https://blog.example.com/"},
    {"token": "abc"},
    {"token": "abc", "url": "javascript:alert(1)"},
])
def test_click_falls_back_to_home(client, params):
    response = client.get("/api/track/click", params=params, follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "/"


def test_view_increments(client, make_user, make_post):
    post = make_post(make_user("author"), is_published=True)

    first = client.post("/api/track/view", json={"postId": post.id})
    second = client.post("/api/track/view", json={"postId": post.id})

    assert first.json() == {"success": True, "viewCount": 1}
    assert second.json() == {"success": True, "viewCount": 2}


def test_view_errors(client):
    missing = client.post("/api/track/view", json={})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Post ID is required"}

    unknown = client.post("/api/track/view", json={"postId": 404})
    assert unknown.status_code == 404
