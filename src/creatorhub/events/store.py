"""Event store — append-only audit log.

Services record each state change as an immutable event on a stream
named after the thing that changed ("appointment:12", "user:4"), e.g.
{type: "appointment.responded", data: {"status": "approved"},
meta: {"actor_id": 4}}. Rows are never updated or deleted.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creatorhub.db.models import Event


class EventStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream_id: str,
        event_type: str,
        data: dict,
        metadata: dict | None = None,
    ) -> Event:
        """Add an event to the caller's transaction; flushed so it has an id."""
        event = Event(stream_id=stream_id, type=event_type, data=data, meta=metadata or {})
        self.db.add(event)
        await self.db.flush()
        return event

    async def read(
        self,
        *,
        stream_id: str | None = None,
        event_types: list[str] | None = None,
        after_id: int = 0,
        limit: int = 100,
    ) -> list[Event]:
        """Events in id order after `after_id`, from one stream or all of them."""
        query = select(Event).where(Event.id > after_id)
        if stream_id is not None:
            query = query.where(Event.stream_id == stream_id)
        if event_types:
            query = query.where(Event.type.in_(event_types))
        result = await self.db.execute(query.order_by(Event.id).limit(limit))
        return list(result.scalars().all())
