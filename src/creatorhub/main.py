"""FastAPI application factory.

create_app() returns a configured FastAPI instance. The lifespan connects
Redis and starts the pub/sub relay that forwards user-channel events to
this worker's WebSocket connections. Without Redis the app still runs:
events are delivered to local connections only.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from creatorhub import __version__
from creatorhub.api import api_router
from creatorhub.config import settings
from creatorhub.db.engine import engine
from creatorhub.middleware.rate_limit import RateLimitMiddleware
from creatorhub.middleware.request_id import RequestIdMiddleware
from creatorhub.middleware.security import SecurityHeadersMiddleware
from creatorhub.realtime.connections import registry
from creatorhub.realtime.pubsub import close_redis, init_redis, relay_loop
from creatorhub.realtime.websocket import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "creatorhub.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    relay_task = None
    try:
        await init_redis()
        relay_task = asyncio.create_task(relay_loop())
        logger.info("creatorhub.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        # Redis is optional: single-worker delivery still works
        logger.warning("creatorhub.redis_unavailable", error=str(e))

    yield

    logger.info("creatorhub.shutdown", connections=registry.connection_count())

    if relay_task:
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass
        except Exception:
            # The relay ended on its own error; shutdown carries on
            logger.exception("creatorhub.relay_failed")

    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="CreatorHub",
        description="Creator management portal: messaging, notifications, appointments",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: creatorhub.main:app)
app = create_app()
