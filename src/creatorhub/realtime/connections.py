"""In-process registry of open WebSocket connections, keyed by user id.

A user may hold several connections at once (one per browser tab).
Each API worker has its own registry; cross-worker fan-out goes through
Redis (see pubsub.py).
"""

import json
import time
from typing import Any, Iterable, Optional, Protocol

import structlog

logger = structlog.get_logger()

# Envelope types understood by the web client
EVENT_TYPES = ("message", "notification", "status", "typing", "read", "appointment")


class Connection(Protocol):
    """Anything we can push text frames to (starlette WebSocket in practice)."""

    async def send_text(self, data: str) -> None: ...


def build_envelope(
    event_type: str,
    data: dict[str, Any],
    sender: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Wrap an event payload the way the web client expects it."""
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type}")
    return {
        "type": event_type,
        "data": data,
        "sender": sender,
        "timestamp": int(time.time() * 1000),
    }


class ConnectionRegistry:
    """Open connections per user, with delivery that prunes dead sockets."""

    def __init__(self):
        self._connections: dict[int, set[Connection]] = {}

    def register(self, user_id: int, ws: Connection) -> None:
        self._connections.setdefault(user_id, set()).add(ws)
        logger.debug(
            "realtime.connected",
            user_id=user_id,
            connections=len(self._connections[user_id]),
        )

    def unregister(self, user_id: int, ws: Connection) -> None:
        conns = self._connections.get(user_id)
        if not conns:
            return
        conns.discard(ws)
        if not conns:
            del self._connections[user_id]
        logger.debug("realtime.disconnected", user_id=user_id)

    def is_online(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    def online_users(self) -> set[int]:
        return set(self._connections)

    def connection_count(self, user_id: Optional[int] = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(c) for c in self._connections.values())

    def clear(self) -> None:
        self._connections.clear()

    async def send_to_user(self, user_id: int, text: str) -> int:
        """Push a text frame to every connection of a user.

        Returns the number of successful sends. A connection whose send
        raises is dropped from the registry.
        """
        sent = 0
        # Snapshot: unregister() may mutate the set while we await
        for ws in list(self._connections.get(user_id, ())):
            try:
                await ws.send_text(text)
                sent += 1
            except Exception as e:
                logger.warning(
                    "realtime.send_failed", user_id=user_id, error=str(e)
                )
                self.unregister(user_id, ws)
        return sent

    async def deliver(
        self, recipient_ids: Iterable[int], envelope: dict[str, Any]
    ) -> set[int]:
        """Deliver one envelope to each distinct recipient.

        Returns the set of recipients with at least one successful send.
        """
        text = json.dumps(envelope, default=str)
        reached = set()
        for user_id in set(recipient_ids):
            if await self.send_to_user(user_id, text):
                reached.add(user_id)
        return reached


# Process-wide registry used by the WebSocket endpoint and the relay
registry = ConnectionRegistry()
