"""Redis pub/sub — fan-out of real-time events across API workers.

Redis pub/sub is fire-and-forget. If a recipient has no open connection
the push is lost. That's fine for real-time UI updates (the client can
always query the API to catch up); the data itself is already persisted.

Channel naming: creatorhub:user:{user_id}
Every worker runs relay_loop(), pattern-subscribed to all user channels,
and forwards each message to the connections it holds locally.

Without Redis (single worker, tests) events go straight to the local
registry.
"""

import asyncio
import json
from typing import Any, Iterable, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from creatorhub.config import settings
from creatorhub.realtime.connections import build_envelope, registry

logger = structlog.get_logger()

CHANNEL_PREFIX = "creatorhub:user"
PRESENCE_KEY = "creatorhub:presence"
RELAY_RETRY_SECONDS = 2.0

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection before publishing it
    await client.ping()
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def redis_available() -> bool:
    return _redis is not None


def user_channel(user_id: int) -> str:
    return f"{CHANNEL_PREFIX}:{user_id}"


def _user_id_from_channel(channel: str) -> Optional[int]:
    prefix = f"{CHANNEL_PREFIX}:"
    if not channel.startswith(prefix):
        return None
    try:
        return int(channel[len(prefix):])
    except ValueError:
        return None


async def publish_event(
    recipient_ids: Iterable[int],
    event_type: str,
    data: dict[str, Any],
    sender: Optional[dict[str, Any]] = None,
) -> None:
    """Deliver an event to the connected recipients.

    Services call this after their database writes are committed. It
    never raises into the caller: a Redis failure degrades to local
    delivery, and a broken socket is pruned by the registry.
    """
    recipients = sorted(set(recipient_ids))
    if not recipients:
        return
    envelope = build_envelope(event_type, data, sender)

    if _redis is not None:
        payload = json.dumps(envelope, default=str)
        try:
            async with _redis.pipeline(transaction=False) as pipe:
                for user_id in recipients:
                    pipe.publish(user_channel(user_id), payload)
                await pipe.execute()
            logger.debug(
                "realtime.published", type=event_type, recipients=recipients
            )
            return
        except (RedisError, OSError) as e:
            logger.warning(
                "realtime.redis_publish_failed", type=event_type, error=str(e)
            )

    reached = await registry.deliver(recipients, envelope)
    logger.debug(
        "realtime.delivered",
        type=event_type,
        recipients=recipients,
        reached=sorted(reached),
    )


async def relay_loop(retry_delay: float = RELAY_RETRY_SECONDS) -> None:
    """Forward Redis user-channel messages to this worker's connections.

    Runs as a background task for the lifetime of the app. A Redis error
    drops the subscription; the loop waits and subscribes again.
    """
    logger.info("realtime.relay_started")
    while True:
        try:
            await _relay_once()
        except (RedisError, OSError):
            logger.exception("realtime.relay_failed", retry_in=retry_delay)
        await asyncio.sleep(retry_delay)


async def _relay_once() -> None:
    pubsub = get_redis().pubsub()
    try:
        await pubsub.psubscribe(f"{CHANNEL_PREFIX}:*")
        async for message in pubsub.listen():
            if message["type"] != "pmessage":
                continue
            user_id = _user_id_from_channel(message["channel"])
            if user_id is None:
                continue
            await registry.send_to_user(user_id, message["data"])
    finally:
        await _close_pubsub(pubsub)


async def _close_pubsub(pubsub) -> None:
    # Fails as well on a dead connection
    try:
        await pubsub.punsubscribe()
        await pubsub.aclose()
    except (RedisError, OSError) as e:
        logger.warning("realtime.relay_close_failed", error=str(e))


# ─── Presence ─────────────────────────────────────────────


async def mark_online(user_id: int) -> Optional[int]:
    """Count one more open connection for a user across all workers.

    Returns the user's connection count on all workers, or None when
    Redis is not available.
    """
    if _redis is None:
        return None
    try:
        return await _redis.hincrby(PRESENCE_KEY, str(user_id), 1)
    except (RedisError, OSError) as e:
        logger.warning("realtime.presence_failed", user_id=user_id, error=str(e))
        return None


async def mark_offline(user_id: int) -> Optional[int]:
    """Count one connection fewer; returns what remains (None without Redis)."""
    if _redis is None:
        return None
    try:
        remaining = await _redis.hincrby(PRESENCE_KEY, str(user_id), -1)
        if remaining <= 0:
            await _redis.hdel(PRESENCE_KEY, str(user_id))
        return remaining
    except (RedisError, OSError) as e:
        logger.warning("realtime.presence_failed", user_id=user_id, error=str(e))
        return None


async def is_user_online(user_id: int) -> bool:
    """True if the user has an open connection on any worker."""
    if _redis is not None:
        try:
            count = await _redis.hget(PRESENCE_KEY, str(user_id))
            return int(count or 0) > 0
        except (RedisError, OSError) as e:
            logger.warning(
                "realtime.presence_failed", user_id=user_id, error=str(e)
            )
    return registry.is_online(user_id)
