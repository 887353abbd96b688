"""Communication tests: template CRUD, rendering, template sends and the
history trail.
"""

from datetime import datetime

import pytest

from creatorhub.db.models import User
from creatorhub.realtime.connections import registry
from creatorhub.services.communication_service import render

from conftest import FakeEmailChannel, FakeSocket


async def _template(client, **fields) -> dict:
    body = {
        "name": "Welcome",
        "type": "email",
        "category": "onboarding",
        "subject": "Welcome {{recipientName}}",
        "content": "Hi {{recipientName}}, your shoot is on {{day}}.",
        **fields,
    }
    r = await client.post("/api/v1/communication-templates", json=body)
    assert r.status_code == 201, r.text
    return r.json()


# ═══════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════


def test_render_params_and_builtins():
    creator = User(full_name="Mia Stone", email="mia@example.com")
    now = datetime(2026, 3, 4, 9, 5, 7)
    text = render(
        "{{recipientName}} <{{recipientEmail}}> {{day}} {{date}} {{time}} {{unknown}}",
        {"day": "Monday"},
        creator,
        now,
    )
    assert text == "Mia Stone <mia@example.com> Monday 3/4/2026 9:05:07 AM {{unknown}}"


def test_render_params_win_over_builtins():
    creator = User(full_name="Mia Stone", email="mia@example.com")
    text = render("{{recipientName}}", {"recipientName": "Mimi"}, creator)
    assert text == "Mimi"


# ═══════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_and_read_template(client, admin):
    t = await _template(client)
    assert t["created_by"] == admin.id
    assert t["is_default"] is False

    r = await client.get(f"/api/v1/communication-templates/{t['id']}")
    assert r.json()["name"] == "Welcome"


@pytest.mark.asyncio
async def test_list_filters(client):
    await _template(client)
    await _template(client, name="Shoot reminder", type="sms", category="appointment", subject=None)

    r = await client.get("/api/v1/communication-templates", params={"type": "sms"})
    assert [t["name"] for t in r.json()] == ["Shoot reminder"]
    r = await client.get("/api/v1/communication-templates", params={"category": "onboarding"})
    assert [t["name"] for t in r.json()] == ["Welcome"]


@pytest.mark.asyncio
async def test_one_default_per_type_and_category(client):
    first = await _template(client, is_default=True)
    second = await _template(client, name="Welcome v2", is_default=True)

    r = await client.get(
        "/api/v1/communication-templates/default",
        params={"type": "email", "category": "onboarding"},
    )
    assert r.json()["id"] == second["id"]
    r = await client.get(f"/api/v1/communication-templates/{first['id']}")
    assert r.json()["is_default"] is False

    # Promoting the first one again demotes the second
    r = await client.patch(
        f"/api/v1/communication-templates/{first['id']}", json={"is_default": True}
    )
    assert r.json()["is_default"] is True
    r = await client.get(f"/api/v1/communication-templates/{second['id']}")
    assert r.json()["is_default"] is False


@pytest.mark.asyncio
async def test_default_missing_is_404(client):
    r = await client.get(
        "/api/v1/communication-templates/default",
        params={"type": "sms", "category": "billing"},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_partial_update(client):
    t = await _template(client)
    r = await client.patch(
        f"/api/v1/communication-templates/{t['id']}", json={"content": "Hello again"}
    )
    assert r.status_code == 200
    assert r.json()["content"] == "Hello again"
    assert r.json()["subject"] == t["subject"]


@pytest.mark.asyncio
async def test_delete_keeps_history(client, creator):
    t = await _template(client)
    sent = (await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id, "params": {"day": "Friday"}},
    )).json()

    r = await client.delete(f"/api/v1/communication-templates/{t['id']}")
    assert r.json() == {"deleted": True}
    assert (await client.get(f"/api/v1/communication-templates/{t['id']}")).status_code == 404

    r = await client.get(f"/api/v1/communication-history/{sent['history']['id']}")
    assert r.status_code == 200
    assert r.json()["template_id"] is None
    assert r.json()["content"] == "Hi Mia Stone, your shoot is on Friday."


@pytest.mark.asyncio
async def test_template_writes_are_admin_only(client, act_as, creator):
    t = await _template(client)
    act_as(creator)

    assert (await client.get(f"/api/v1/communication-templates/{t['id']}")).status_code == 200
    r = await client.post(
        "/api/v1/communication-templates",
        json={"name": "x", "type": "sms", "category": "c", "content": "y"},
    )
    assert r.status_code == 403
    r = await client.patch(f"/api/v1/communication-templates/{t['id']}", json={"name": "z"})
    assert r.status_code == 403
    r = await client.delete(f"/api/v1/communication-templates/{t['id']}")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_template_type_is_validated(client):
    r = await client.post(
        "/api/v1/communication-templates",
        json={"name": "x", "type": "fax", "category": "c", "content": "y"},
    )
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Send
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_send_email_template(client, channels, creator):
    t = await _template(client)
    r = await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id, "params": {"day": "Friday"}},
    )
    assert r.status_code == 201
    data = r.json()
    assert data["success"] is True
    assert data["message"] == "email sent successfully"
    assert data["history"]["status"] == "sent"
    assert data["history"]["subject"] == "Welcome Mia Stone"

    [mail] = channels.email.sent
    assert mail["to"] == "mia@example.com"
    assert mail["text"] == "Hi Mia Stone, your shoot is on Friday."
    assert "<h2>Welcome Mia Stone</h2>" in mail["html"]


@pytest.mark.asyncio
async def test_send_email_default_subject(client, channels, creator):
    t = await _template(client, subject=None)
    await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id},
    )
    assert channels.email.sent[0]["subject"] == "CreatorHub: Welcome"


@pytest.mark.asyncio
async def test_send_email_failure_is_recorded(client, channels, creator):
    channels.email = FakeEmailChannel(ok=False, error="SendGrid said no")
    t = await _template(client)
    r = await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id},
    )
    assert r.status_code == 201
    data = r.json()
    assert data["success"] is False
    assert data["message"] == "Failed to send email: SendGrid said no"
    assert data["history"]["status"] == "failed"
    assert data["history"]["status_message"] == "SendGrid said no"


@pytest.mark.asyncio
async def test_send_sms_template(client, channels, creator):
    t = await _template(client, type="sms", subject=None, content="See you {{day}}")
    r = await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id, "params": {"day": "soon"}},
    )
    assert r.json()["success"] is True
    assert channels.sms.sent == [{"to": "+15551230001", "body": "See you soon"}]


@pytest.mark.asyncio
async def test_send_sms_without_phone_fails(client, channels, other_creator):
    t = await _template(client, type="sms", subject=None, content="Ping")
    r = await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": other_creator.id},
    )
    data = r.json()
    assert data["success"] is False
    assert data["message"] == "Failed to send sms: Recipient has no phone number"
    assert channels.sms.sent == []


@pytest.mark.asyncio
async def test_send_notification_template(client, creator):
    sock = FakeSocket()
    registry.register(creator.id, sock)
    t = await _template(
        client, type="notification", category="billing", subject=None,
        content="Invoice for {{month}} is ready",
    )
    r = await client.post(
        "/api/v1/send-communication",
        json={"template_id": t["id"], "recipient_id": creator.id, "params": {"month": "May"}},
    )
    assert r.json()["success"] is True

    [note] = sock.of_type("notification")
    assert note["data"]["type"] == "billing"
    assert note["data"]["content"] == "Invoice for May is ready"


@pytest.mark.asyncio
async def test_send_unknown_template_or_recipient(client, creator):
    r = await client.post(
        "/api/v1/send-communication", json={"template_id": 999, "recipient_id": creator.id}
    )
    assert r.status_code == 404

    t = await _template(client)
    r = await client.post(
        "/api/v1/send-communication", json={"template_id": t["id"], "recipient_id": 999}
    )
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_history_list_needs_a_filter(client):
    r = await client.get("/api/v1/communication-history")
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_history_filters(client, creator, other_creator):
    email = await _template(client)
    sms = await _template(client, type="sms", subject=None, content="Ping")
    for template_id, recipient_id in (
        (email["id"], creator.id), (sms["id"], creator.id), (email["id"], other_creator.id),
    ):
        await client.post(
            "/api/v1/send-communication",
            json={"template_id": template_id, "recipient_id": recipient_id},
        )

    r = await client.get("/api/v1/communication-history", params={"recipient_id": creator.id})
    assert [h["type"] for h in r.json()] == ["sms", "email"]

    r = await client.get("/api/v1/communication-history", params={"type": "email"})
    assert {h["recipient_id"] for h in r.json()} == {creator.id, other_creator.id}


@pytest.mark.asyncio
async def test_history_entry_visible_to_parties(client, act_as, creator, other_creator):
    r = await client.post(
        "/api/v1/communication-history",
        json={"recipient_id": creator.id, "type": "email", "subject": "Contract", "content": "Signed copy"},
    )
    assert r.status_code == 201
    entry = r.json()
    assert entry["status"] == "sent"

    act_as(creator)
    assert (await client.get(f"/api/v1/communication-history/{entry['id']}")).status_code == 200
    assert (await client.get("/api/v1/communication-history", params={"type": "email"})).status_code == 403

    act_as(other_creator)
    assert (await client.get(f"/api/v1/communication-history/{entry['id']}")).status_code == 403


@pytest.mark.asyncio
async def test_create_history_unknown_recipient(client):
    r = await client.post(
        "/api/v1/communication-history",
        json={"recipient_id": 999, "type": "sms", "content": "x"},
    )
    assert r.status_code == 404
