"""WebSocket endpoint — real-time event delivery to frontend clients.

Each browser tab connects to /ws?token=JWT. The handler:
1. Authenticates via the JWT query param (always required: the token is
   how we know whose events to deliver)
2. Registers the socket in the local ConnectionRegistry and, for the
   user's first connection on any worker, tells their conversation
   peers they came online
3. Handles client frames (ping, typing, read) until the client leaves
4. Unregisters, and tells peers they went offline once the last tab on
   any worker closes (the Redis presence count; the local registry
   without Redis)

Outbound events never pass through this loop: the relay task (or a local
publish_event) writes straight to the registered sockets.
"""

import json
from typing import Any, Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.auth.jwt import TokenError, user_id_from_token
from creatorhub.db.engine import async_session_factory
from creatorhub.db.models import User
from creatorhub.realtime.connections import registry
from creatorhub.realtime.pubsub import mark_offline, mark_online, publish_event
from creatorhub.services.errors import NotFoundError, PermissionDeniedError
from creatorhub.services.messaging_service import MessagingService, sender_info

logger = structlog.get_logger()
router = APIRouter()


def _as_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


async def handle_client_frame(
    raw: str, user: User, db: AsyncSession
) -> Optional[dict]:
    """Act on one frame sent by a client. Returns a reply frame or None.

    Malformed JSON and unknown frame types are ignored.
    """
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict):
        return None

    kind = frame.get("type")
    if kind == "ping":
        return {"type": "pong"}

    service = MessagingService(db)

    if kind == "typing":
        conversation_id = _as_id(frame.get("conversation_id"))
        if conversation_id is None:
            return None
        if not await service.is_participant(user.id, conversation_id):
            return None
        others = [
            pid for pid in await service.participant_ids(conversation_id)
            if pid != user.id
        ]
        await publish_event(
            others,
            "typing",
            {
                "conversation_id": conversation_id,
                "user_id": user.id,
                "is_typing": bool(frame.get("is_typing", True)),
            },
            sender=sender_info(user),
        )

    elif kind == "read":
        message_id = _as_id(frame.get("message_id"))
        if message_id is None:
            return None
        try:
            await service.mark_message_read(message_id, user)
        except (NotFoundError, PermissionDeniedError) as e:
            logger.info("ws.read_rejected", user_id=user.id, message_id=message_id, error=str(e))

    return None


async def _broadcast_status(user: User, status: str, peers: set[int]) -> None:
    await publish_event(
        peers,
        "status",
        {"user_id": user.id, "status": status},
        sender=sender_info(user),
    )


@router.websocket("/ws")
async def user_websocket(websocket: WebSocket):
    """WebSocket endpoint delivering a user's real-time events."""
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return

    try:
        user_id = user_id_from_token(token)
    except TokenError:
        await websocket.close(code=4001, reason="Invalid or expired token")
        return

    async with async_session_factory() as db:
        user = await db.get(User, user_id)
        peers = await MessagingService(db).conversation_peers(user_id) if user else set()
    if not user:
        await websocket.close(code=4001, reason="Unknown user")
        return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()
    registry.register(user.id, websocket)
    connections = await mark_online(user.id)
    if connections is None:
        connections = registry.connection_count(user.id)
    logger.info("ws.connected", user_id=user.id, connections=connections)

    # Only the user's first connection on any worker announces them
    if connections == 1:
        await _broadcast_status(user, "online", peers)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                continue  # binary frames carry no client events
            async with async_session_factory() as db:
                reply = await handle_client_frame(raw, user, db)
            if reply is not None:
                await websocket.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(user.id, websocket)
        remaining = await mark_offline(user.id)
        if remaining is None:
            remaining = registry.connection_count(user.id)
        logger.info("ws.disconnected", user_id=user.id, connections=remaining)
        if remaining <= 0:
            await _broadcast_status(user, "offline", peers)
