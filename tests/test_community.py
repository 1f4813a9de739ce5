"""
tests/test_community.py — Discussion groups, membership and chat
"""
from __future__ import annotations

import pytest

from siquan.core.errors import ForbiddenError, NotFoundError, ValidationFailed
from siquan.entities import GroupMessage
from siquan.services import community


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def member(make_user):
    return make_user("member")


@pytest.fixture
def group(db, owner):
    return community.create_group(db, owner, "Study Abroad", description="Applications and visas")


def test_creator_becomes_group_admin(db, owner, group):
    membership = community.get_membership(db, group.id, owner.id)
    assert membership.role == "admin"
    assert membership.has_completed_onboarding is True
    assert group.member_count == 1


def test_group_name_rules(db, owner, group):
    with pytest.raises(ValidationFailed, match="Group name is required"):
        community.create_group(db, owner, "  ")
    with pytest.raises(ValidationFailed, match="A group with this name already exists"):
        community.create_group(db, owner, "Study Abroad")


def test_listing_hides_private_groups(db, owner, member, group):
    community.create_group(db, owner, "Inner Circle", is_private=True)
    community.join_group(db, group.id, member)

    groups = community.list_groups(db)

    assert [(g.name, g.member_count) for g in groups] == [("Study Abroad", 2)]


def test_join_and_leave(db, member, group):
    joined = community.join_group(db, group.id, member)
    assert joined.role == "member"
    assert joined.has_completed_onboarding is False

    with pytest.raises(ValidationFailed, match="Already a member"):
        community.join_group(db, group.id, member)

    community.complete_onboarding(db, group.id, member)
    assert community.get_membership(db, group.id, member.id).has_completed_onboarding is True

    community.leave_group(db, group.id, member)
    assert community.get_membership(db, group.id, member.id) is None


def test_join_unknown_group(db, member):
    with pytest.raises(NotFoundError, match="Group not found"):
        community.join_group(db, 999, member)


def test_only_members_post(db, member, group):
    with pytest.raises(ForbiddenError, match="You must join this group first"):
        community.post_message(db, group.id, member, "hello")

    community.join_group(db, group.id, member)
    message = community.post_message(db, group.id, member, "  hello  ")
    assert message.content == "hello"
    assert message.username == "member"

    with pytest.raises(ValidationFailed, match="Message cannot be empty"):
        community.post_message(db, group.id, member, "")
    with pytest.raises(ValidationFailed, match="at most 4000"):
        community.post_message(db, group.id, member, "x" * 4001)


def test_messages_page_is_latest_oldest_first(db, owner, group):
    for i in range(5):
        community.post_message(db, group.id, owner, f"message {i}")

    page = community.list_messages(db, group.id, owner, limit=3)

    assert [m.content for m in page] == ["message 2", "message 3", "message 4"]


def test_private_group_messages_need_membership(db, owner, member):
    private = community.create_group(db, owner, "Inner Circle", is_private=True)
    with pytest.raises(ForbiddenError):
        community.list_messages(db, private.id, member)


def test_delete_message_permissions(db, owner, member, make_user, group):
    community.join_group(db, group.id, member)
    bystander = make_user("bystander")
    community.join_group(db, group.id, bystander)
    message = community.post_message(db, group.id, member, "oops")

    with pytest.raises(ForbiddenError, match="You can only delete your own messages"):
        community.delete_message(db, message.id, bystander)

    community.delete_message(db, message.id, owner)

    assert db.get(GroupMessage, message.id).is_deleted is True
    assert community.list_messages(db, group.id, member) == []
    with pytest.raises(NotFoundError, match="Message not found"):
        community.delete_message(db, message.id, member)


# ──────────────────────────────────────────────────────────────────────────────
# Members
# ──────────────────────────────────────────────────────────────────────────────

def test_group_admin_removes_member(db, owner, member, group):
    community.join_group(db, group.id, member)

    community.kick_member(db, group.id, member.id, owner)

    assert community.get_membership(db, group.id, member.id) is None
    assert [m.username for m in community.list_members(db, group.id, owner)] == ["owner"]


def test_kick_rules(db, owner, member, make_user, admin, group):
    community.join_group(db, group.id, member)
    bystander = make_user("bystander")
    community.join_group(db, group.id, bystander)

    with pytest.raises(ForbiddenError, match="Only group admins can remove members"):
        community.kick_member(db, group.id, member.id, bystander)
    with pytest.raises(ForbiddenError, match="Group admins cannot be removed"):
        community.kick_member(db, group.id, owner.id, admin)
    with pytest.raises(ValidationFailed, match="Use leave"):
        community.kick_member(db, group.id, owner.id, owner)
    with pytest.raises(NotFoundError, match="Member not found"):
        community.kick_member(db, group.id, "no-such-user", owner)

    community.kick_member(db, group.id, bystander.id, admin)
    assert community.get_membership(db, group.id, bystander.id) is None


# ──────────────────────────────────────────────────────────────────────────────
# Threads
# ──────────────────────────────────────────────────────────────────────────────

def test_members_open_threads(db, owner, member, group):
    with pytest.raises(ForbiddenError, match="You must join this group first"):
        community.create_thread(db, group.id, member, "Visa timelines")

    community.join_group(db, group.id, member)
    thread = community.create_thread(db, group.id, member, "  Visa timelines ", description="Share yours")

    assert thread.title == "Visa timelines"
    assert thread.creator_name == "member"
    assert thread.is_pinned is False
    assert thread.is_locked is False
    assert thread.message_count == 0


def test_thread_text_limits(db, owner, group):
    with pytest.raises(ValidationFailed, match="Thread title is required"):
        community.create_thread(db, group.id, owner, "   ")
    with pytest.raises(ValidationFailed, match="at most 100 characters"):
        community.create_thread(db, group.id, owner, "x" * 101)
    with pytest.raises(ValidationFailed, match="at most 500 characters"):
        community.create_thread(db, group.id, owner, "ok", description="y" * 501)


def test_thread_messages_bump_activity_and_count(db, owner, group):
    quiet = community.create_thread(db, group.id, owner, "Quiet")
    busy = community.create_thread(db, group.id, owner, "Busy")
    community.post_message(db, group.id, owner, "general chatter")

    community.post_message(db, group.id, owner, "first", thread_id=quiet.id)
    community.post_message(db, group.id, owner, "second", thread_id=quiet.id)

    threads = community.list_threads(db, group.id, owner)
    assert [(t.title, t.message_count) for t in threads] == [("Quiet", 2), ("Busy", 0)]

    in_thread = community.list_messages(db, group.id, owner, thread_id=quiet.id)
    assert [m.content for m in in_thread] == ["first", "second"]
    assert all(m.thread_id == quiet.id for m in in_thread)
    assert community.list_messages(db, group.id, owner, thread_id=busy.id) == []


def test_pinned_threads_come_first(db, owner, group):
    older = community.create_thread(db, group.id, owner, "Older")
    community.create_thread(db, group.id, owner, "Newer")

    community.update_thread(db, older.id, owner, is_pinned=True)

    assert [t.title for t in community.list_threads(db, group.id, owner)] == ["Older", "Newer"]


def test_locked_thread_refuses_messages(db, owner, member, group):
    community.join_group(db, group.id, member)
    thread = community.create_thread(db, group.id, owner, "Announcements")

    locked = community.update_thread(db, thread.id, owner, is_locked=True)
    assert locked.is_locked is True

    with pytest.raises(ForbiddenError, match="This thread is locked"):
        community.post_message(db, group.id, member, "can I post?", thread_id=thread.id)


def test_thread_from_another_group_is_not_found(db, owner, group):
    other = community.create_group(db, owner, "Other Group")
    thread = community.create_thread(db, other.id, owner, "Elsewhere")

    with pytest.raises(NotFoundError, match="Thread not found"):
        community.post_message(db, group.id, owner, "hello", thread_id=thread.id)


def test_only_moderators_manage_threads(db, owner, member, group):
    community.join_group(db, group.id, member)
    thread = community.create_thread(db, group.id, member, "Mine")

    with pytest.raises(ForbiddenError, match="Only group admins can manage threads"):
        community.update_thread(db, thread.id, member, is_pinned=True)
    with pytest.raises(ForbiddenError, match="Only group admins can manage threads"):
        community.delete_thread(db, thread.id, member)

    edited = community.update_thread(db, thread.id, owner, title="Renamed", description="")
    assert edited.title == "Renamed"
    assert edited.description is None


def test_delete_thread_removes_its_messages(db, owner, group):
    thread = community.create_thread(db, group.id, owner, "Short lived")
    community.post_message(db, group.id, owner, "inside", thread_id=thread.id)
    community.post_message(db, group.id, owner, "outside")

    community.delete_thread(db, thread.id, owner)

    assert community.list_threads(db, group.id, owner) == []
    assert [m.content for m in community.list_messages(db, group.id, owner)] == ["outside"]


def test_deleting_thread_message_lowers_count(db, owner, group):
    thread = community.create_thread(db, group.id, owner, "Counted")
    message = community.post_message(db, group.id, owner, "one", thread_id=thread.id)

    community.delete_message(db, message.id, owner)

    assert community.list_threads(db, group.id, owner)[0].message_count == 0


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def test_group_endpoints(client, owner, member, auth_headers):
    created = client.post(
        "/api/groups",
        json={"name": "AI News Club", "category": "AI News"},
        headers=auth_headers(owner),
    )
    assert created.status_code == 201
    group_id = created.json()["id"]
    assert created.json()["memberCount"] == 1

    headers = auth_headers(member)
    joined = client.post(f"/api/groups/{group_id}/join", headers=headers)
    assert joined.json() == {"success": True, "role": "member"}

    posted = client.post(f"/api/groups/{group_id}/messages", json={"content": "hi all"}, headers=headers)
    assert posted.status_code == 201

    listing = client.get(f"/api/groups/{group_id}/messages", headers=headers)
    assert [row["content"] for row in listing.json()] == ["hi all"]

    deleted = client.delete(f"/api/groups/messages/{posted.json()['id']}", headers=headers)
    assert deleted.status_code == 204


def test_group_endpoint_errors(client, member, auth_headers):
    response = client.post("/api/groups/42/join", headers=auth_headers(member))
    assert response.status_code == 404
    assert response.json() == {"error": "Group not found"}

    assert client.get("/api/groups/42/messages").status_code == 401


def test_thread_endpoints(client, owner, member, auth_headers):
    owner_headers = auth_headers(owner)
    member_headers = auth_headers(member)
    group_id = client.post("/api/groups", json={"name": "Founders"}, headers=owner_headers).json()["id"]
    client.post(f"/api/groups/{group_id}/join", headers=member_headers)

    created = client.post(
        f"/api/groups/{group_id}/threads",
        json={"title": "Fundraising", "description": "Seed rounds"},
        headers=member_headers,
    )
    assert created.status_code == 201
    thread_id = created.json()["id"]
    assert created.json()["isLocked"] is False

    posted = client.post(
        f"/api/groups/{group_id}/messages",
        json={"content": "Any advice?", "threadId": thread_id},
        headers=member_headers,
    )
    assert posted.status_code == 201
    assert posted.json()["threadId"] == thread_id

    listing = client.get(f"/api/groups/{group_id}/messages", params={"threadId": thread_id}, headers=member_headers)
    assert [row["content"] for row in listing.json()] == ["Any advice?"]

    threads = client.get(f"/api/groups/{group_id}/threads", headers=member_headers).json()
    assert threads[0]["messageCount"] == 1

    forbidden = client.patch(f"/api/groups/threads/{thread_id}", json={"isLocked": True}, headers=member_headers)
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Only group admins can manage threads"}

    locked = client.patch(f"/api/groups/threads/{thread_id}", json={"isLocked": True}, headers=owner_headers)
    assert locked.status_code == 200
    assert locked.json()["isLocked"] is True

    refused = client.post(
        f"/api/groups/{group_id}/messages",
        json={"content": "late reply", "threadId": thread_id},
        headers=member_headers,
    )
    assert refused.status_code == 403
    assert refused.json() == {"error": "This thread is locked"}

    deleted = client.delete(f"/api/groups/threads/{thread_id}", headers=owner_headers)
    assert deleted.status_code == 204
    assert client.get(f"/api/groups/{group_id}/threads", headers=owner_headers).json() == []


def test_member_endpoints(client, owner, member, auth_headers):
    owner_headers = auth_headers(owner)
    member_headers = auth_headers(member)
    group_id = client.post("/api/groups", json={"name": "Readers"}, headers=owner_headers).json()["id"]
    client.post(f"/api/groups/{group_id}/join", headers=member_headers)

    members = client.get(f"/api/groups/{group_id}/members", headers=member_headers).json()
    assert [(m["username"], m["role"]) for m in members] == [("owner", "admin"), ("member", "member")]

    refused = client.delete(f"/api/groups/{group_id}/members/{owner.id}", headers=member_headers)
    assert refused.status_code == 403

    kicked = client.delete(f"/api/groups/{group_id}/members/{member.id}", headers=owner_headers)
    assert kicked.status_code == 204

    remaining = client.get(f"/api/groups/{group_id}/members", headers=owner_headers).json()
    assert [m["username"] for m in remaining] == ["owner"]
