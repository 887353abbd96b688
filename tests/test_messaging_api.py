"""Conversation + message tests.

Covers:
1. Conversation creation (creator included, dedupe, unknown users)
2. Sending: persistence, preview, notifications, real-time fan-out
3. Access control for non-participants
4. Polling with after_id
5. Read receipts (single message, whole conversation)
6. SMS alerts to offline recipients
"""

import pytest
from sqlalchemy import select

from creatorhub.config import settings
from creatorhub.db.models import CommunicationHistory, Event, Notification
from creatorhub.realtime.connections import registry
from creatorhub.services.messaging_service import make_preview

from conftest import FakeSocket


async def _conversation(client, *participant_ids, title="Launch plan") -> dict:
    r = await client.post(
        "/api/v1/conversations",
        json={"title": title, "participant_ids": list(participant_ids)},
    )
    assert r.status_code == 201, r.text
    return r.json()


async def _send(client, conversation_id: int, content: str) -> dict:
    r = await client.post(
        f"/api/v1/conversations/{conversation_id}/messages", json={"content": content}
    )
    assert r.status_code == 201, r.text
    return r.json()


# ═══════════════════════════════════════════════════════════
# Conversations
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_conversation_includes_creator(client, admin, creator):
    conv = await _conversation(client, creator.id, creator.id)
    ids = [p["user_id"] for p in conv["participants"]]
    assert sorted(ids) == sorted([admin.id, creator.id])
    assert conv["title"] == "Launch plan"
    assert conv["last_message_preview"] == ""


@pytest.mark.asyncio
async def test_create_conversation_default_title(client, creator):
    r = await client.post("/api/v1/conversations", json={"participant_ids": [creator.id]})
    assert r.status_code == 201
    assert r.json()["title"] == "New Conversation"


@pytest.mark.asyncio
async def test_create_conversation_unknown_user(client):
    r = await client.post("/api/v1/conversations", json={"participant_ids": [999]})
    assert r.status_code == 404
    assert "999" in r.json()["detail"]


@pytest.mark.asyncio
async def test_list_conversations_newest_activity_first(client, act_as, admin, creator):
    first = await _conversation(client, creator.id, title="First")
    second = await _conversation(client, creator.id, title="Second")
    await _send(client, first["id"], "bump")

    act_as(creator)
    r = await client.get("/api/v1/conversations")
    assert r.status_code == 200
    rows = r.json()
    assert [c["title"] for c in rows] == ["First", "Second"]
    assert rows[0]["unread_count"] == 1
    assert rows[1]["unread_count"] == 0
    assert rows[0]["id"] != second["id"]


@pytest.mark.asyncio
async def test_list_conversations_only_mine(client, act_as, creator, other_creator):
    await _conversation(client, creator.id)
    act_as(other_creator)
    r = await client.get("/api/v1/conversations")
    assert r.json() == []


@pytest.mark.asyncio
async def test_get_conversation_forbidden_for_outsider(client, act_as, creator, other_creator):
    conv = await _conversation(client, creator.id)
    act_as(other_creator)
    r = await client.get(f"/api/v1/conversations/{conv['id']}")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_participants(client, admin, creator):
    conv = await _conversation(client, creator.id)
    r = await client.get(f"/api/v1/conversations/{conv['id']}/participants")
    assert r.status_code == 200
    assert {u["username"] for u in r.json()} == {admin.username, creator.username}


@pytest.mark.asyncio
async def test_participants_of_missing_conversation_is_404(client, act_as, creator, other_creator):
    r = await client.get("/api/v1/conversations/9999/participants")
    assert r.status_code == 404

    conv = await _conversation(client, creator.id)
    act_as(other_creator)
    r = await client.get(f"/api/v1/conversations/{conv['id']}/participants")
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# Sending
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_send_message_persists_and_fans_out(client, db_session, admin, creator, other_creator):
    conv = await _conversation(client, creator.id)
    admin_tab1, admin_tab2 = FakeSocket(), FakeSocket()
    creator_sock, outsider_sock = FakeSocket(), FakeSocket()
    registry.register(admin.id, admin_tab1)
    registry.register(admin.id, admin_tab2)
    registry.register(creator.id, creator_sock)
    registry.register(other_creator.id, outsider_sock)

    msg = await _send(client, conv["id"], "Shoot moved to Friday")
    assert msg["sender_id"] == admin.id
    assert msg["read_at"] is None

    # Every participant connection gets the message, the sender's tabs too
    for sock in (admin_tab1, admin_tab2, creator_sock):
        [event] = sock.of_type("message")
        assert event["data"]["id"] == msg["id"]
        assert event["sender"] == {"id": admin.id, "username": admin.username}
    assert outsider_sock.sent == []

    # The recipient also gets an in-app notification
    [note_event] = creator_sock.of_type("notification")
    assert note_event["data"]["type"] == "message"
    assert note_event["data"]["link"] == f"/messages/{conv['id']}"
    assert admin_tab1.of_type("notification") == []

    notes = (await db_session.execute(select(Notification))).scalars().all()
    assert [(n.recipient_id, n.title) for n in notes] == [(creator.id, "New Message")]

    events = (await db_session.execute(select(Event).where(Event.type == "message.sent"))).scalars().all()
    assert len(events) == 1


@pytest.mark.asyncio
async def test_send_updates_preview(client):
    conv = await _conversation(client)
    long_text = "x" * 80
    await _send(client, conv["id"], long_text)

    r = await client.get(f"/api/v1/conversations/{conv['id']}")
    assert r.json()["last_message_preview"] == "x" * 50 + "..."


def test_make_preview():
    assert make_preview("short") == "short"
    assert make_preview("a" * 50) == "a" * 50
    assert make_preview("a" * 51) == "a" * 50 + "..."
    assert make_preview("abcdef", length=3) == "abc..."


@pytest.mark.asyncio
async def test_non_participant_cannot_send(client, act_as, creator, other_creator):
    conv = await _conversation(client, creator.id)
    act_as(other_creator)
    r = await client.post(
        f"/api/v1/conversations/{conv['id']}/messages", json={"content": "let me in"}
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_send_to_missing_conversation(client):
    r = await client.post("/api/v1/conversations/404/messages", json={"content": "hello"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_empty_message_rejected(client):
    conv = await _conversation(client)
    r = await client.post(f"/api/v1/conversations/{conv['id']}/messages", json={"content": ""})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_offline_recipient_still_gets_message_by_polling(client, act_as, creator):
    """No socket open: the push is lost but the data is there."""
    conv = await _conversation(client, creator.id)
    await _send(client, conv["id"], "are you there?")

    act_as(creator)
    r = await client.get(f"/api/v1/conversations/{conv['id']}/messages")
    assert [m["content"] for m in r.json()] == ["are you there?"]


# ═══════════════════════════════════════════════════════════
# Polling
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_messages_after_id(client):
    conv = await _conversation(client)
    m1 = await _send(client, conv["id"], "one")
    await _send(client, conv["id"], "two")
    await _send(client, conv["id"], "three")

    r = await client.get(
        f"/api/v1/conversations/{conv['id']}/messages", params={"after_id": m1["id"]}
    )
    assert [m["content"] for m in r.json()] == ["two", "three"]

    r = await client.get(f"/api/v1/conversations/{conv['id']}/messages", params={"limit": 1})
    assert [m["content"] for m in r.json()] == ["one"]


@pytest.mark.asyncio
async def test_admin_can_read_any_conversation(client, act_as, admin, creator, other_creator):
    act_as(creator)
    conv = await _conversation(client, other_creator.id)
    await _send(client, conv["id"], "between us")

    act_as(admin)
    r = await client.get(f"/api/v1/conversations/{conv['id']}/messages")
    assert r.status_code == 200
    assert len(r.json()) == 1


@pytest.mark.asyncio
async def test_outsider_cannot_poll(client, act_as, creator, other_creator):
    conv = await _conversation(client, creator.id)
    act_as(other_creator)
    r = await client.get(f"/api/v1/conversations/{conv['id']}/messages")
    assert r.status_code == 403


# ═══════════════════════════════════════════════════════════
# Read receipts
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_mark_message_read(client, act_as, admin, creator):
    conv = await _conversation(client, creator.id)
    msg = await _send(client, conv["id"], "read me")
    admin_sock = FakeSocket()
    registry.register(admin.id, admin_sock)

    act_as(creator)
    r = await client.post(f"/api/v1/messages/{msg['id']}/read")
    assert r.status_code == 200
    first_read_at = r.json()["read_at"]
    assert first_read_at is not None

    [event] = admin_sock.of_type("read")
    assert event["data"]["message_ids"] == [msg["id"]]

    # Idempotent: the first read wins and nothing is pushed again
    r = await client.post(f"/api/v1/messages/{msg['id']}/read")
    assert r.json()["read_at"] == first_read_at
    assert len(admin_sock.of_type("read")) == 1


@pytest.mark.asyncio
async def test_sender_reading_own_message_is_noop(client, admin, creator):
    conv = await _conversation(client, creator.id)
    msg = await _send(client, conv["id"], "mine")
    r = await client.post(f"/api/v1/messages/{msg['id']}/read")
    assert r.status_code == 200
    assert r.json()["read_at"] is None


@pytest.mark.asyncio
async def test_mark_missing_message_read(client):
    r = await client.post("/api/v1/messages/999/read")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_outsider_cannot_mark_read(client, act_as, creator, other_creator):
    conv = await _conversation(client, creator.id)
    msg = await _send(client, conv["id"], "private")
    act_as(other_creator)
    r = await client.post(f"/api/v1/messages/{msg['id']}/read")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_mark_conversation_read_and_unread_count(client, act_as, admin, creator):
    conv = await _conversation(client, creator.id)
    for text in ("one", "two", "three"):
        await _send(client, conv["id"], text)
    admin_sock = FakeSocket()
    registry.register(admin.id, admin_sock)

    act_as(creator)
    r = await client.get("/api/v1/messages/unread-count")
    assert r.json() == {"count": 3}

    r = await client.post(f"/api/v1/conversations/{conv['id']}/read")
    assert r.json() == {"marked": 3}
    [event] = admin_sock.of_type("read")
    assert len(event["data"]["message_ids"]) == 3

    r = await client.get("/api/v1/messages/unread-count")
    assert r.json() == {"count": 0}

    r = await client.post(f"/api/v1/conversations/{conv['id']}/read")
    assert r.json() == {"marked": 0}


# ═══════════════════════════════════════════════════════════
# SMS alerts
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_sms_alert_for_offline_recipient(client, db_session, channels, monkeypatch, creator, other_creator):
    monkeypatch.setattr(settings, "message_sms_alerts", True)
    conv = await _conversation(client, creator.id, other_creator.id)

    await _send(client, conv["id"], "new brief uploaded")

    # creator has a phone and is offline; other_creator has no phone
    assert [s["to"] for s in channels.sms.sent] == [creator.phone]
    history = (await db_session.execute(select(CommunicationHistory))).scalars().all()
    assert [(h.recipient_id, h.type, h.status) for h in history] == [(creator.id, "sms", "sent")]


@pytest.mark.asyncio
async def test_no_sms_alert_when_online(client, channels, monkeypatch, creator):
    monkeypatch.setattr(settings, "message_sms_alerts", True)
    registry.register(creator.id, FakeSocket())
    conv = await _conversation(client, creator.id)

    await _send(client, conv["id"], "you're online")
    assert channels.sms.sent == []


@pytest.mark.asyncio
async def test_no_sms_alert_by_default(client, channels, creator):
    conv = await _conversation(client, creator.id)
    await _send(client, conv["id"], "quiet")
    assert channels.sms.sent == []
