"""
tests/test_pages.py — Server-rendered post and unsubscribe pages, health
"""
from __future__ import annotations


def test_post_page_renders_markdown(client, make_user, make_post):
    make_post(
        make_user("author"),
        title="Notes From Taipei",
        slug="notes-from-taipei",
        content="## Day one\n\nRain **all** day.",
    )

    response = client.get("/post/notes-from-taipei")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Notes From Taipei" in response.text
    assert '<strong class="font-bold">all</strong>' in response.text
    assert "author" in response.text


def test_post_page_strips_script_from_user_html(client, make_user, make_post):
    make_post(
        make_user("author"),
        title="Sneaky",
        slug="sneaky",
        content=(
            "<p>hello</p><script>alert(document.cookie)</script>"
            '<img src="x" onerror="alert(1)"><a href="javascript:alert(2)">click</a>'
        ),
    )

    response = client.get("/post/sneaky")

    assert response.status_code == 200
    assert "<p>hello</p>" in response.text
    assert "<script>alert" not in response.text
    assert "onerror" not in response.text
    assert "javascript:" not in response.text


def test_post_created_over_http_is_sanitized_on_its_page(client, make_user, auth_headers):
    writer = make_user("writer")
    created = client.post(
        "/api/posts",
        json={"title": "Hi", "content": "<p>hello</p><script>alert(document.cookie)</script>"},
        headers=auth_headers(writer),
    )

    page = client.get(f"/post/{created.json()['slug']}")

    assert "<p>hello</p>" in page.text
    assert "<script>alert" not in page.text


def test_post_page_hides_drafts(client, make_user, make_post):
    make_post(make_user("author"), title="Draft", slug="draft", is_published=False)

    response = client.get("/post/draft")

    assert response.status_code == 404
    assert "Post not found" in response.text


def test_unsubscribe_page_unsubscribes_on_load(client, db, make_subscriber):
    subscriber = make_subscriber("reader@example.com")

    response = client.get("/unsubscribe", params={"token": subscriber.unsubscribe_token})

    assert response.status_code == 200
    assert "Successfully Unsubscribed" in response.text
    assert subscriber.unsubscribe_token in response.text
    db.refresh(subscriber)
    assert subscriber.is_subscribed is False


def test_unsubscribe_page_with_bad_token(client):
    assert "Invalid Link" in client.get("/unsubscribe", params={"token": "nope"}).text
    assert "Invalid Link" in client.get("/unsubscribe").text


def test_health_and_ping(client):
    assert client.get("/api/ping").status_code == 200

    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["checks"]["database_connected"] is True


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_security_headers(client):
    response = client.get("/api/ping")
    assert response.headers["x-content-type-options"] == "nosniff"
