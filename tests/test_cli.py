"""CLI tests — commands run against a mocked API transport."""

import json

import httpx
import pytest
from click.testing import CliRunner

from creatorhub.cli import main as cli


@pytest.fixture()
def api(monkeypatch):
    """Route CLI requests to a handler; returns the list of requests seen."""
    seen: list[httpx.Request] = []
    responses: dict[tuple[str, str], httpx.Response] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.get(
            (request.method, request.url.path),
            httpx.Response(404, json={"detail": "Not Found"}),
        )

    def fake_client(token=None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return httpx.AsyncClient(
            base_url="http://api.test",
            headers=headers,
            transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(cli, "_client", fake_client)
    return seen, responses


def test_health(api):
    _, responses = api
    responses[("GET", "/api/v1/health")] = httpx.Response(200, json={
        "status": "healthy", "server": "ok", "database": "ok",
        "redis": "disabled", "version": "0.1.0", "connections": 2,
    })
    result = CliRunner().invoke(cli.main, ["health"])
    assert result.exit_code == 0, result.output
    assert "Status: healthy" in result.output
    assert "redis" in result.output and "disabled" in result.output


def test_notifications_requires_token(api, monkeypatch):
    monkeypatch.delenv("CREATORHUB_TOKEN", raising=False)
    result = CliRunner().invoke(cli.main, ["notifications"])
    assert result.exit_code == 1
    assert "--token required" in result.output


def test_notifications_table(api):
    seen, responses = api
    responses[("GET", "/api/v1/notifications")] = httpx.Response(200, json=[
        {"id": 7, "is_read": False, "type": "billing", "title": "Billing Update",
         "content": "Invoice ready"},
    ])
    result = CliRunner().invoke(cli.main, ["--token", "tok", "notifications", "--unread"])
    assert result.exit_code == 0, result.output
    assert "Invoice ready" in result.output
    assert "NEW" in result.output

    [req] = seen
    assert req.headers["Authorization"] == "Bearer tok"
    assert req.url.params["unread_only"] == "true"


def test_notifications_json(api):
    _, responses = api
    rows = [{"id": 1, "is_read": True, "type": "content", "title": "t", "content": "c"}]
    responses[("GET", "/api/v1/notifications")] = httpx.Response(200, json=rows)
    result = CliRunner().invoke(cli.main, ["--token", "tok", "notifications", "--json"])
    assert json.loads(result.output) == rows


def test_notify(api):
    seen, responses = api
    responses[("POST", "/api/v1/notifications/send")] = httpx.Response(201, json={
        "notification": {"id": 12},
        "delivery": {"channel": "email", "success": True, "error": None, "notification_id": 12},
    })
    result = CliRunner().invoke(
        cli.main, ["--token", "tok", "notify", "5", "Payout sent", "-t", "billing", "-m", "email"]
    )
    assert result.exit_code == 0, result.output
    assert "Notification #12 sent via email" in result.output

    body = json.loads(seen[0].content)
    assert body["user_id"] == 5
    assert body["type"] == "billing"
    assert body["delivery_method"] == "email"


def test_notify_reports_channel_failure(api):
    _, responses = api
    responses[("POST", "/api/v1/notifications/send")] = httpx.Response(201, json={
        "notification": {"id": 3},
        "delivery": {"channel": "sms", "success": False,
                     "error": "Recipient has no phone number", "notification_id": 3},
    })
    result = CliRunner().invoke(cli.main, ["--token", "tok", "notify", "5", "Hi", "-m", "sms"])
    assert "sms failed: Recipient has no phone number" in result.output


def test_api_error_exits_with_detail(api):
    _, responses = api
    responses[("POST", "/api/v1/notifications/send")] = httpx.Response(
        403, json={"detail": "Admin access required"}
    )
    result = CliRunner().invoke(cli.main, ["--token", "tok", "notify", "5", "Hi"])
    assert result.exit_code == 1
    assert "Error 403: Admin access required" in result.output


def test_conversations(api):
    _, responses = api
    responses[("GET", "/api/v1/conversations")] = httpx.Response(200, json=[{
        "id": 4, "title": "Summer campaign", "unread_count": 2,
        "last_message_preview": "See you there",
        "participants": [{"user": {"username": "agency"}}, {"user": {"username": "mia"}}],
    }])
    result = CliRunner().invoke(cli.main, ["--token", "tok", "conversations"])
    assert result.exit_code == 0, result.output
    assert "Summer campaign" in result.output
    assert "agency, mia" in result.output


def test_send_template(api):
    seen, responses = api
    responses[("POST", "/api/v1/send-communication")] = httpx.Response(201, json={
        "success": True, "message": "email sent successfully",
        "history": {"id": 9, "status": "sent"},
    })
    result = CliRunner().invoke(
        cli.main, ["--token", "tok", "send-template", "3", "12", "-p", "day=Friday"]
    )
    assert result.exit_code == 0, result.output
    assert "email sent successfully" in result.output
    assert json.loads(seen[0].content) == {
        "template_id": 3, "recipient_id": 12, "params": {"day": "Friday"},
    }


def test_send_template_rejects_bad_param(api):
    result = CliRunner().invoke(
        cli.main, ["--token", "tok", "send-template", "3", "12", "-p", "nokey"]
    )
    assert result.exit_code == 2
    assert "expected key=value" in result.output
