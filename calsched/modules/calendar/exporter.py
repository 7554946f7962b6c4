"""Export pipeline: validate, build the provider payload, deliver with retries."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
from abc import ABC, abstractmethod
from typing import Any, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential

from calsched.config import ExportStrategy
from calsched.errors import InvalidEvent, OperationCancelled
from calsched.logging_config import get_logger
from calsched.modules.calendar.client import CalendarClient
from calsched.modules.calendar.models import (
    CalendarEvent,
    ExportCancelled,
    ExportResult,
    ExportSuccess,
    TransportFailure,
)
from calsched.modules.recurrence.engine import RecurrenceEngine
from calsched.timestamps import format_timestamp

logger = get_logger(__name__)


class BaseCalendarExporter(ABC):
    """Abstract export capability consumed by the scheduling service."""

    @abstractmethod
    async def export(
        self, event: CalendarEvent, cancel: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """Deliver ``event`` to a provider and report the outcome."""


def _is_retryable(result: ExportResult) -> bool:
    return isinstance(result, TransportFailure) and result.retryable


def _last_result(retry_state: RetryCallState) -> ExportResult:
    return retry_state.outcome.result()


class CalendarExporter(BaseCalendarExporter):
    """Exports events through a CalendarClient with exponential backoff."""

    def __init__(
        self,
        client: CalendarClient,
        max_attempts: int = 4,
        backoff_base: float = 0.5,
        backoff_max: float = 30.0,
        strategy: ExportStrategy = ExportStrategy.NATIVE,
        engine: Optional[RecurrenceEngine] = None,
        horizon: dt.timedelta = dt.timedelta(days=366),
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._strategy = strategy
        self._engine = engine or RecurrenceEngine()
        self._horizon = horizon

    async def export(
        self, event: CalendarEvent, cancel: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """Validate, build and deliver ``event``.

        Raises:
            InvalidEvent: If the event is not in an exportable shape.
        """
        self.validate_exportable(event)
        try:
            if event.recurrence is not None and self._strategy == ExportStrategy.EXPAND:
                return await self._export_expanded(event, cancel)
            return await self._deliver(self.build_payload(event), cancel)
        except OperationCancelled as exc:
            logger.info("export_cancelled", event_id=event.id, reason=exc.message)
            return ExportCancelled(reason=exc.message)

    async def _export_expanded(
        self, event: CalendarEvent, cancel: Optional[asyncio.Event],
    ) -> ExportResult:
        """Send one non-recurring provider event per occurrence.

        Occurrences already recorded in ``event.provider_event_ids`` by an
        earlier partial export are skipped. Failures carry the ids created so
        far in ``completed_ids``.
        """
        horizon = event.start + self._horizon
        created = list(event.provider_event_ids)
        for occurrence in self._engine.expand(event, event.recurrence, horizon):
            if occurrence.index < len(event.provider_event_ids):
                continue
            payload = self.build_payload(event, start=occurrence.start, end=occurrence.end)
            try:
                result = await self._deliver(payload, cancel)
            except OperationCancelled as exc:
                return ExportCancelled(reason=exc.message, completed_ids=tuple(created))
            if not isinstance(result, ExportSuccess):
                logger.warning(
                    "expanded_export_stopped",
                    event_id=event.id,
                    index=occurrence.index,
                    exported=len(created),
                )
                return dataclasses.replace(result, completed_ids=tuple(created))
            created.append(result.provider_event_id)

        if not created:
            raise InvalidEvent("Recurrence produced no occurrences within the export horizon")
        logger.info(
            "expanded_export_complete",
            event_id=event.id,
            occurrences=len(created),
            resumed_from=len(event.provider_event_ids),
        )
        return ExportSuccess(provider_event_id=created[0], provider_event_ids=tuple(created))

    async def _deliver(
        self, payload: dict[str, Any], cancel: Optional[asyncio.Event],
    ) -> ExportResult:
        """Send ``payload``, retrying retryable transport failures."""

        async def attempt() -> ExportResult:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Export cancelled before attempt")
            return await self._client.create_event(payload, cancel)

        async def backoff(seconds: float) -> None:
            logger.info("export_retry_backoff", seconds=round(seconds, 3))
            if cancel is None:
                await asyncio.sleep(seconds)
                return
            try:
                await asyncio.wait_for(cancel.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                return
            raise OperationCancelled("Export cancelled during retry backoff")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_result(_is_retryable),
            retry_error_callback=_last_result,
            sleep=backoff,
        )
        result = await retrying(attempt)
        if _is_retryable(result):
            logger.error(
                "export_retries_exhausted",
                attempts=self._max_attempts,
                detail=result.message,
            )
        return result

    @staticmethod
    def validate_exportable(event: CalendarEvent) -> None:
        """Fail fast on events the provider must never see."""
        if not event.title or not event.title.strip():
            raise InvalidEvent("Event title must not be empty")
        for name, value in (("start", event.start), ("end", event.end)):
            if value.tzinfo is None or value.utcoffset() is None:
                raise InvalidEvent(f"Event {name} must carry an explicit offset")
        if event.end.astimezone(dt.UTC) <= event.start.astimezone(dt.UTC):
            raise InvalidEvent("Event end must be after start")

    def build_payload(
        self,
        event: CalendarEvent,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> dict[str, Any]:
        """Build the provider JSON body.

        When ``start``/``end`` are given the payload describes that single
        occurrence and carries no recurrence.
        """
        single = start is not None
        body: dict[str, Any] = {
            "summary": event.title,
            "description": event.description,
            "start": self._time_field(start or event.start, event.timezone),
            "end": self._time_field(end or event.end, event.timezone),
        }
        if event.recurrence is not None and not single:
            body["recurrence"] = [f"RRULE:{event.recurrence.to_rrule()}"]
        return body

    @staticmethod
    def _time_field(value: dt.datetime, timezone: Optional[str]) -> dict[str, str]:
        field = {"dateTime": format_timestamp(value)}
        if timezone:
            field["timeZone"] = timezone
        return field
