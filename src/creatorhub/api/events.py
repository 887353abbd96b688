"""Audit log routes (admin only, read-only).

Every service appends an immutable event per state change; these
endpoints page through them, either one stream ("appointment:12",
"user:4", "template:3") or the whole log.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.db.engine import get_db
from creatorhub.events.store import EventStore

router = APIRouter()


@router.get("/events")
async def list_events(
    stream_id: Optional[str] = Query(None, description="e.g. appointment:12"),
    type: Optional[list[str]] = Query(None, description="Event type filter (repeatable)"),
    after_id: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Events in id order, after the given position."""
    events = await EventStore(db).read(
        stream_id=stream_id, event_types=type, after_id=after_id, limit=limit
    )
    return [
        {
            "id": e.id,
            "stream_id": e.stream_id,
            "type": e.type,
            "data": e.data,
            "metadata": e.meta,
            "created_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in events
    ]
