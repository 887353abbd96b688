#!/usr/bin/env python3
"""
CreatorHub Quickstart: one pass through every feature.

Admin creates a creator → conversation → messages → read receipts →
appointment proposal → creator approves → template send → history.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:8000
"""

import httpx

from _common import BASE, admin_client, create_creator, login


def main():
    admin = admin_client()
    me = admin.get("/auth/me").json()

    # ── Creator account ───────────────────────────────────────────
    print("\n1. Creating a creator account...")
    creator, password = create_creator(admin, "Mia Stone", phone="+15551230001")
    print(f"   Creator: {creator['username']} (#{creator['id']})")
    creator_client = httpx.Client(
        base_url=BASE,
        timeout=10,
        headers={"Authorization": f"Bearer {login(creator['email'], password)}"},
    )

    # ── Conversation + messages ───────────────────────────────────
    print("\n2. Opening a conversation...")
    resp = admin.post("/conversations", json={
        "title": "Summer campaign",
        "participant_ids": [creator["id"]],
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    conv = resp.json()
    print(f"   Conversation #{conv['id']}: {conv['title']}")

    resp = admin.post(f"/conversations/{conv['id']}/messages", json={
        "content": "Shoot is confirmed for Friday, details below.",
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"

    unread = creator_client.get("/messages/unread-count").json()
    print(f"   Creator unread messages: {unread['count']}")

    resp = creator_client.post(f"/conversations/{conv['id']}/read")
    print(f"   Creator marked {resp.json()['marked']} message(s) read")

    resp = creator_client.post(f"/conversations/{conv['id']}/messages", json={
        "content": "Perfect, see you there!",
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"

    messages = admin.get(f"/conversations/{conv['id']}/messages").json()
    for m in messages:
        print(f"   [{m['sender_id']}] {m['content']}")

    # ── Appointment ───────────────────────────────────────────────
    print("\n3. Proposing an appointment...")
    resp = admin.post("/appointments", json={
        "client_id": creator["id"],
        "appointment_date": "2026-11-06T15:30:00Z",
        "duration": 90,
        "location": "Studio B",
        "amount": "250",
        "notification_method": "all",
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    proposed = resp.json()
    appt = proposed["appointment"]
    for d in proposed["delivery"]:
        status = "ok" if d["success"] else f"failed ({d['error']})"
        print(f"   {d['channel']:7s} {status}")

    resp = creator_client.post(f"/appointments/{appt['id']}/respond", json={"status": "approved"})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print(f"   Creator responded: {resp.json()['status']}")

    # ── Template send ─────────────────────────────────────────────
    print("\n4. Sending a templated notification...")
    resp = admin.post("/communication-templates", json={
        "name": "Payout",
        "type": "notification",
        "category": "billing",
        "content": "Hi {{recipientName}}, your {{month}} payout is on its way.",
        "is_default": True,
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    template = resp.json()

    resp = admin.post("/send-communication", json={
        "template_id": template["id"],
        "recipient_id": creator["id"],
        "params": {"month": "October"},
    })
    print(f"   {resp.json()['message']}")

    # ── Creator's bell menu ───────────────────────────────────────
    print("\n5. Creator notifications:")
    for n in creator_client.get("/notifications").json():
        flag = " " if n["is_read"] else "*"
        print(f"   {flag} {n['title']}: {n['content']}")

    history = admin.get("/communication-history", params={"sender_id": me["id"]}).json()
    print(f"\nHistory entries sent by {me['username']}: {len(history)}")


if __name__ == "__main__":
    main()
