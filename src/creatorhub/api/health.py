"""Health check endpoint.

Verifies the server is running and its dependencies (database, Redis)
are reachable. Redis is optional, so a missing Redis is reported but
does not make the service unhealthy.
"""

import structlog
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub import __version__
from creatorhub.db.engine import get_db
from creatorhub.realtime.connections import registry
from creatorhub.realtime.pubsub import get_redis, redis_available

logger = structlog.get_logger()
router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health.database_failed", error=str(e))
        checks["database"] = f"error: {e}"

    if redis_available():
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except (RedisError, OSError) as e:
            checks["redis"] = f"error: {e}"
    else:
        checks["redis"] = "disabled"

    healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")
    return {
        "status": "healthy" if healthy else "degraded",
        "connections": registry.connection_count(),
        **checks,
    }
