"""In-memory event repository shared by concurrent scheduling tasks."""

from __future__ import annotations

import asyncio
import datetime as dt
from typing import Optional

from calsched.errors import EventNotFound
from calsched.logging_config import get_logger
from calsched.modules.calendar.models import CalendarEvent, ExportStatus

logger = get_logger(__name__)


class EventStore:
    """Concurrency-safe store of accepted events keyed by event id.

    Every read and write goes through one asyncio.Lock, held only for the
    dictionary update. Construct one per application and pass it to its
    consumers.
    """

    def __init__(self) -> None:
        self._events: dict[str, CalendarEvent] = {}
        self._lock = asyncio.Lock()

    async def save(self, event: CalendarEvent) -> None:
        """Insert or overwrite the event stored under ``event.id``."""
        async with self._lock:
            replaced = event.id in self._events
            self._events[event.id] = event
        logger.debug("event_saved", event_id=event.id, replaced=replaced)

    async def get(self, event_id: str) -> CalendarEvent:
        """Return the stored event or raise EventNotFound."""
        async with self._lock:
            event = self._events.get(event_id)
        if event is None:
            raise EventNotFound(event_id)
        return event

    async def list_events(self) -> list[CalendarEvent]:
        """Return all stored events ordered by start."""
        async with self._lock:
            events = list(self._events.values())
        return sorted(events, key=lambda e: e.start.astimezone(dt.UTC))

    async def annotate_export(
        self,
        event_id: str,
        status: ExportStatus,
        provider_event_id: str = "",
        error: str = "",
        provider_event_ids: Optional[tuple[str, ...]] = None,
    ) -> CalendarEvent:
        """Record the outcome of an export attempt on a stored event.

        ``provider_event_ids`` replaces the recorded per-occurrence ids when
        given. Empty ``provider_event_id`` keeps the previous value.
        """
        async with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise EventNotFound(event_id)
            updated = event.model_copy(update={
                "export_status": status,
                "provider_event_id": provider_event_id or event.provider_event_id,
                "provider_event_ids": (
                    event.provider_event_ids if provider_event_ids is None else provider_event_ids
                ),
                "last_export_error": error,
                "updated_at": dt.datetime.now(dt.UTC),
            })
            self._events[event_id] = updated
        logger.debug("event_export_annotated", event_id=event_id, status=status.value)
        return updated

    def __len__(self) -> int:
        return len(self._events)
