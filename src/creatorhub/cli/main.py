"""CreatorHub CLI — poke the API from a terminal.

Usage:
    creatorhub health                               # Server + dependency status
    creatorhub notifications --unread               # Your notifications
    creatorhub notify 12 "Your payout is ready" -t billing -m email
    creatorhub conversations                        # Your conversations
    creatorhub send-template 3 12 -p date=Friday    # Send a template to a user

Authenticate with --token or the CREATORHUB_TOKEN env var (an access
token from POST /api/v1/auth/login).
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("CREATORHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the CreatorHub API."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an already running event loop (e.g. tests) the coroutine is
    run on a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


def _require_token(ctx: click.Context) -> str:
    token = ctx.obj.get("token")
    if not token:
        click.secho(
            "Error: --token required (or set CREATORHUB_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return token


def _check(r: httpx.Response) -> None:
    """Exit with the API's error detail on a non-2xx response."""
    if r.is_success:
        return
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _parse_params(pairs: tuple[str, ...]) -> dict[str, str]:
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--param")
        params[key] = value
    return params


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="creatorhub")
@click.option("--token", envvar="CREATORHUB_TOKEN", help="Access token (or CREATORHUB_TOKEN)")
@click.pass_context
def main(ctx: click.Context, token: Optional[str]):
    """CreatorHub — messaging, notifications and communications from the terminal."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token


# ---------------------------------------------------------------------------
# creatorhub health
# ---------------------------------------------------------------------------


@main.command()
def health():
    """Show server and dependency health."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        r = await c.get("/api/v1/health")
        _check(r)
        data = r.json()

    color = "green" if data["status"] == "healthy" else "yellow"
    click.secho(f"Status: {data['status']}", fg=color, bold=True)
    for key in ("version", "database", "redis", "connections"):
        if key in data:
            click.echo(f"  {key:12s} {data[key]}")


# ---------------------------------------------------------------------------
# creatorhub notifications
# ---------------------------------------------------------------------------


@main.command()
@click.option("--unread", is_flag=True, help="Only unread notifications")
@click.option("--limit", "-l", default=20, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
@click.pass_context
def notifications(ctx: click.Context, unread: bool, limit: int, as_json: bool):
    """List your in-app notifications."""
    _run(_notifications_impl(_require_token(ctx), unread, limit, as_json))


async def _notifications_impl(token: str, unread: bool, limit: int, as_json: bool):
    async with _client(token) as c:
        r = await c.get(
            "/api/v1/notifications",
            params={"unread_only": str(unread).lower(), "limit": limit},
        )
        _check(r)
        rows = r.json()

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        click.echo("No notifications.")
        return

    for n in rows:
        n["state"] = "read" if n["is_read"] else "NEW"
    _print_table(rows, [
        ("ID", "id", 6),
        ("", "state", 4),
        ("Type", "type", 12),
        ("Title", "title", 22),
        ("Content", "content", 50),
    ])


# ---------------------------------------------------------------------------
# creatorhub notify
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id", type=int)
@click.argument("content")
@click.option("--type", "-t", "ntype", default="content", help="Notification type")
@click.option(
    "--method", "-m",
    type=click.Choice(["in-app", "email", "sms"]),
    default="in-app",
    help="Delivery method",
)
@click.option("--title", help="Override the default title")
@click.option("--link", help="Relative link shown with the notification")
@click.pass_context
def notify(ctx: click.Context, user_id: int, content: str, ntype: str,
           method: str, title: Optional[str], link: Optional[str]):
    """Send a notification to a user (admin only)."""
    _run(_notify_impl(_require_token(ctx), user_id, content, ntype, method, title, link))


async def _notify_impl(token: str, user_id: int, content: str, ntype: str,
                       method: str, title: Optional[str], link: Optional[str]):
    body = {
        "user_id": user_id,
        "type": ntype,
        "content": content,
        "delivery_method": method,
        "title": title,
        "link": link,
    }
    async with _client(token) as c:
        r = await c.post("/api/v1/notifications/send", json=body)
        _check(r)
        data = r.json()

    delivery = data["delivery"]
    if delivery["success"]:
        click.secho(
            f"Notification #{data['notification']['id']} sent via {delivery['channel']}",
            fg="green",
        )
    else:
        click.secho(
            f"Notification #{data['notification']['id']} recorded, "
            f"{delivery['channel']} failed: {delivery['error']}",
            fg="yellow",
        )


# ---------------------------------------------------------------------------
# creatorhub conversations
# ---------------------------------------------------------------------------


@main.command()
@click.pass_context
def conversations(ctx: click.Context):
    """List your conversations, most recent first."""
    _run(_conversations_impl(_require_token(ctx)))


async def _conversations_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/api/v1/conversations")
        _check(r)
        rows = r.json()

    if not rows:
        click.echo("No conversations.")
        return

    for conv in rows:
        conv["with"] = ", ".join(p["user"]["username"] for p in conv["participants"])
    _print_table(rows, [
        ("ID", "id", 6),
        ("Title", "title", 24),
        ("Unread", "unread_count", 6),
        ("Participants", "with", 24),
        ("Last message", "last_message_preview", 40),
    ])


# ---------------------------------------------------------------------------
# creatorhub send-template
# ---------------------------------------------------------------------------


@main.command("send-template")
@click.argument("template_id", type=int)
@click.argument("recipient_id", type=int)
@click.option("--param", "-p", "params", multiple=True, help="Template parameter key=value")
@click.pass_context
def send_template(ctx: click.Context, template_id: int, recipient_id: int,
                  params: tuple[str, ...]):
    """Render a communication template for a user and send it (admin only)."""
    values = _parse_params(params)
    _run(_send_template_impl(_require_token(ctx), template_id, recipient_id, values))


async def _send_template_impl(token: str, template_id: int, recipient_id: int,
                              params: dict[str, str]):
    body = {"template_id": template_id, "recipient_id": recipient_id, "params": params}
    async with _client(token) as c:
        r = await c.post("/api/v1/send-communication", json=body)
        _check(r)
        data = r.json()

    click.secho(data["message"], fg="green" if data["success"] else "yellow")
    click.echo(f"  history #{data['history']['id']}  status={data['history']['status']}")


if __name__ == "__main__":
    main()
