"""Scheduling use case: validate, expand, persist and export events.

The event is saved before any export attempt, so a failed export never
loses it: the caller gets ``ScheduledExportFailed`` and can re-export later
through ``reexport``.
"""

from __future__ import annotations

import asyncio
import datetime as dt
from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from calsched.errors import EmptyRecurrence, SchedulingError, ValidationError
from calsched.logging_config import get_logger
from calsched.modules.calendar.exporter import BaseCalendarExporter
from calsched.modules.calendar.models import (
    CalendarEvent,
    ExportCancelled,
    ExportStatus,
    ExportSuccess,
)
from calsched.modules.calendar.store import EventStore
from calsched.modules.recurrence.engine import RecurrenceEngine
from calsched.modules.recurrence.models import Occurrence, RecurrenceRule, ValidatedRule
from calsched.modules.scheduling.models import (
    RecurrenceRequest,
    Rejected,
    Scheduled,
    ScheduledExportFailed,
    SchedulingRequest,
    SchedulingResult,
)
from calsched.timestamps import parse_timestamp, resolve_zone, to_zone

logger = get_logger(__name__)


def _describe(exc: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "request"
        parts.append(f"{location}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class SchedulingService:
    """Top-level entry point for scheduling calendar events."""

    def __init__(
        self,
        store: EventStore,
        exporter: BaseCalendarExporter,
        engine: Optional[RecurrenceEngine] = None,
        default_timezone: str = "",
        preview_horizon: dt.timedelta = dt.timedelta(days=366),
    ) -> None:
        self._store = store
        self._exporter = exporter
        self._engine = engine or RecurrenceEngine()
        self._default_timezone = default_timezone
        self._preview_horizon = preview_horizon

    async def schedule(
        self,
        request: Union[SchedulingRequest, Mapping[str, Any]],
        cancel: Optional[asyncio.Event] = None,
    ) -> SchedulingResult:
        """Accept a request, persist the event and export it."""
        try:
            event, occurrences = self.prepare(request)
        except SchedulingError as exc:
            logger.warning("schedule_rejected", code=exc.code, error=exc.message)
            return Rejected(error=exc)

        await self._store.save(event)
        logger.info(
            "event_accepted",
            event_id=event.id,
            recurring=event.is_recurring,
            occurrences=len(occurrences),
        )
        return await self._export(event, occurrences, cancel)

    async def reexport(
        self, event_id: str, cancel: Optional[asyncio.Event] = None,
    ) -> SchedulingResult:
        """Export an already stored event again.

        Events already exported are reported as scheduled without another
        request. A partially exported series resumes after the occurrences
        the provider already holds.

        Raises:
            EventNotFound: If no event is stored under ``event_id``.
        """
        event = await self._store.get(event_id)
        logger.info(
            "event_reexport",
            event_id=event_id,
            previous_status=event.export_status.value,
            exported_occurrences=len(event.provider_event_ids),
        )
        if event.export_status == ExportStatus.EXPORTED and event.provider_event_id:
            return Scheduled(
                event_id=event.id,
                provider_event_id=event.provider_event_id,
                occurrences=self.preview(event),
            )
        return await self._export(event, self.preview(event), cancel)

    async def get_event(self, event_id: str) -> CalendarEvent:
        """Return a stored event (raises EventNotFound)."""
        return await self._store.get(event_id)

    def prepare(
        self, request: Union[SchedulingRequest, Mapping[str, Any]],
    ) -> tuple[CalendarEvent, tuple[Occurrence, ...]]:
        """Validate ``request`` and build the event without side effects.

        Raises:
            ValidationError: Missing or malformed fields.
            TimeParseError: Timestamps without the round-trip format or offset.
            RecurrenceError: Invalid recurrence rule.
        """
        req = self._coerce(request)

        zone_name = req.timezone or self._default_timezone or None
        zone = resolve_zone(zone_name) if zone_name else None
        start = to_zone(parse_timestamp(req.start, "start"), zone, "start")
        end = to_zone(parse_timestamp(req.end, "end"), zone, "end")

        rule = self._validate_recurrence(req.recurrence) if req.recurrence else None
        if rule is not None and zone is None:
            self._require_single_offset(start, end, rule)

        try:
            event = CalendarEvent(
                title=req.title,
                start=start,
                end=end,
                timezone=zone_name,
                recurrence=rule,
                description=req.description,
            )
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

        occurrences = self.preview(event)
        if rule is not None and not occurrences:
            raise EmptyRecurrence("Recurrence ends before the event starts")
        return event, occurrences

    def preview(self, event: CalendarEvent) -> tuple[Occurrence, ...]:
        """Expand the event's recurrence up to the preview horizon."""
        if event.recurrence is None:
            return ()
        horizon = event.start + self._preview_horizon
        return tuple(self._engine.expand(event, event.recurrence, horizon))

    @staticmethod
    def _coerce(request: Union[SchedulingRequest, Mapping[str, Any]]) -> SchedulingRequest:
        if isinstance(request, SchedulingRequest):
            return request
        if not isinstance(request, Mapping):
            raise ValidationError(f"Request must be a mapping, got {type(request).__name__}")
        try:
            return SchedulingRequest.model_validate(dict(request))
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    @staticmethod
    def _require_single_offset(start: dt.datetime, end: dt.datetime, rule: ValidatedRule) -> None:
        """Without a zone a series repeats the start's fixed offset.

        Offsets that change between start, end and until mean the caller has
        a DST zone in mind, and a fixed-offset series would drift off their
        local time-of-day.
        """
        offsets = {start.utcoffset(), end.utcoffset()}
        if rule.until is not None:
            offsets.add(rule.until.utcoffset())
        if len(offsets) > 1:
            raise ValidationError(
                "timezone required: start, end and until use different UTC offsets; "
                "pass an IANA timezone (or configure DEFAULT_TIMEZONE) so occurrences "
                "keep their local time across DST changes"
            )

    def _validate_recurrence(self, recurrence: RecurrenceRequest) -> ValidatedRule:
        until = parse_timestamp(recurrence.until, "until") if recurrence.until is not None else None
        return self._engine.validate(RecurrenceRule(
            frequency=recurrence.frequency,
            interval=recurrence.interval,
            count=recurrence.count,
            until=until,
        ))

    async def _export(
        self,
        event: CalendarEvent,
        occurrences: tuple[Occurrence, ...],
        cancel: Optional[asyncio.Event],
    ) -> SchedulingResult:
        result = await self._exporter.export(event, cancel)

        if isinstance(result, ExportSuccess):
            await self._store.annotate_export(
                event.id,
                ExportStatus.EXPORTED,
                provider_event_id=result.provider_event_id,
                provider_event_ids=result.provider_event_ids,
            )
            logger.info("event_scheduled", event_id=event.id, provider_event_id=result.provider_event_id)
            return Scheduled(
                event_id=event.id,
                provider_event_id=result.provider_event_id,
                occurrences=occurrences,
            )

        status = ExportStatus.CANCELLED if isinstance(result, ExportCancelled) else ExportStatus.FAILED
        created = result.completed_ids
        await self._store.annotate_export(
            event.id,
            status,
            provider_event_id=created[0] if created else "",
            error=result.describe(),
            provider_event_ids=created,
        )
        logger.warning(
            "event_export_failed",
            event_id=event.id,
            status=status.value,
            exported_occurrences=len(created),
            detail=result.describe(),
        )
        return ScheduledExportFailed(event_id=event.id, export_error=result)
