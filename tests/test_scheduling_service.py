"""Tests for the scheduling service (validation, persistence, export outcomes)."""

from __future__ import annotations

import asyncio
import datetime as dt
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from calsched.bootstrap import create_scheduling_service
from calsched.config import ExportStrategy
from calsched.errors import (
    AmbiguousTermination,
    EmptyRecurrence,
    EventNotFound,
    InvalidFrequency,
    MissingTermination,
    TimeParseError,
    ValidationError,
)
from calsched.modules.calendar.models import (
    ExportCancelled,
    ExportStatus,
    ExportSuccess,
    ProviderRejection,
    RejectionClass,
    TransportFailure,
)
from calsched.modules.calendar.store import EventStore
from calsched.modules.scheduling.models import (
    Rejected,
    Scheduled,
    ScheduledExportFailed,
    SchedulingRequest,
)
from calsched.modules.scheduling.service import SchedulingService

STANDUP = {
    "title": "Standup",
    "start": "2024-03-09T09:00:00-08:00",
    "end": "2024-03-09T09:15:00-08:00",
    "timezone": "America/Los_Angeles",
    "recurrence": {"frequency": "daily", "until": "2024-03-12T09:00:00-07:00"},
}


@pytest.fixture
def mock_exporter():
    """Create a mock exporter that always succeeds."""
    exporter = MagicMock()
    exporter.export = AsyncMock(return_value=ExportSuccess(provider_event_id="provider-1"))
    return exporter


@pytest.fixture
def service(store: EventStore, mock_exporter) -> SchedulingService:
    return SchedulingService(store=store, exporter=mock_exporter)


class TestSchedule:
    """Tests for SchedulingService.schedule."""

    @pytest.mark.asyncio
    async def test_end_to_end_standup(self, service: SchedulingService, store: EventStore) -> None:
        """Daily standup expands to four 09:00 local occurrences across DST."""
        result = await service.schedule(STANDUP)

        assert isinstance(result, Scheduled)
        assert result.provider_event_id == "provider-1"
        assert [o.start.isoformat() for o in result.occurrences] == [
            "2024-03-09T09:00:00-08:00",
            "2024-03-10T09:00:00-07:00",
            "2024-03-11T09:00:00-07:00",
            "2024-03-12T09:00:00-07:00",
        ]
        stored = await store.get(result.event_id)
        assert stored.export_status == ExportStatus.EXPORTED
        assert stored.provider_event_id == "provider-1"
        assert stored.recurrence.to_rrule() == "FREQ=DAILY;INTERVAL=1;UNTIL=20240312T160000Z"

    @pytest.mark.asyncio
    async def test_default_timezone_applies(self, store: EventStore, mock_exporter) -> None:
        """Without a request zone the configured default drives DST handling."""
        service = SchedulingService(store, mock_exporter, default_timezone="America/Los_Angeles")
        request = {k: v for k, v in STANDUP.items() if k != "timezone"}
        result = await service.schedule(request)

        assert isinstance(result, Scheduled)
        assert [o.start.utcoffset() for o in result.occurrences] == [
            dt.timedelta(hours=-8),
            dt.timedelta(hours=-7),
            dt.timedelta(hours=-7),
            dt.timedelta(hours=-7),
        ]

    @pytest.mark.asyncio
    async def test_no_zone_keeps_fixed_offset(self, service: SchedulingService) -> None:
        request = {k: v for k, v in STANDUP.items() if k != "timezone"}
        request["recurrence"] = {"frequency": "DAILY", "count": 3}
        result = await service.schedule(request)
        assert isinstance(result, Scheduled)
        assert {o.start.utcoffset() for o in result.occurrences} == {dt.timedelta(hours=-8)}

    @pytest.mark.asyncio
    async def test_single_event(self, service: SchedulingService, mock_exporter) -> None:
        result = await service.schedule(SchedulingRequest(
            title="Lunch",
            start="2024-05-01T12:00:00+02:00",
            end="2024-05-01T13:00:00+02:00",
        ))
        assert isinstance(result, Scheduled)
        assert result.occurrences == ()
        exported = mock_exporter.export.await_args.args[0]
        assert exported.title == "Lunch"
        assert exported.recurrence is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_data, error", [
        ({"start": "2024-03-09T09:00:00-08:00", "end": "2024-03-09T10:00:00-08:00"}, ValidationError),
        ({**STANDUP, "title": "  "}, ValidationError),
        ({**STANDUP, "extra": "field"}, ValidationError),
        ({**STANDUP, "start": "2024-03-09T09:00:00"}, TimeParseError),
        ({**STANDUP, "end": "tomorrow"}, TimeParseError),
        ({**STANDUP, "end": "2024-03-09T08:00:00-08:00"}, ValidationError),
        ({**STANDUP, "timezone": "Nowhere/Special"}, ValidationError),
        ({**STANDUP, "start": "2024-03-09T09:00:00-05:00"}, ValidationError),
        ({**STANDUP, "recurrence": {"frequency": "hourly", "count": 2}}, InvalidFrequency),
        ({**STANDUP, "recurrence": {"frequency": "daily"}}, MissingTermination),
        ({**STANDUP, "recurrence": {
            "frequency": "daily", "count": 2, "until": "2024-03-12T09:00:00-07:00",
        }}, AmbiguousTermination),
        ({**STANDUP, "recurrence": {"frequency": "daily", "until": "2024-03-12"}}, TimeParseError),
        ({**STANDUP, "recurrence": {"frequency": "daily", "until": "2024-03-01T09:00:00-08:00"}}, EmptyRecurrence),
    ])
    async def test_rejected_before_persisting(
        self, service: SchedulingService, store: EventStore, mock_exporter, request_data, error,
    ) -> None:
        result = await service.schedule(request_data)

        assert isinstance(result, Rejected)
        assert isinstance(result.error, error)
        assert result.persisted is False
        assert len(store) == 0
        mock_exporter.export.assert_not_called()

    @pytest.mark.asyncio
    async def test_offset_only_series_across_dst_needs_zone(
        self, service: SchedulingService, store: EventStore, mock_exporter,
    ) -> None:
        """Offsets that change across a series without a zone are rejected, not drifted."""
        request = {
            "title": "Standup",
            "start": "2024-03-09T09:00:00-08:00",
            "end": "2024-03-09T09:15:00-08:00",
            "recurrence": {"frequency": "daily", "until": "2024-03-12T09:00:00-07:00"},
        }
        result = await service.schedule(request)

        assert isinstance(result, Rejected)
        assert isinstance(result.error, ValidationError)
        assert "timezone required" in result.error.message
        assert len(store) == 0
        mock_exporter.export.assert_not_called()

    @pytest.mark.asyncio
    async def test_offset_only_series_with_default_zone(self, store: EventStore, mock_exporter) -> None:
        service = SchedulingService(store, mock_exporter, default_timezone="America/Los_Angeles")
        result = await service.schedule({
            "title": "Standup",
            "start": "2024-03-09T09:00:00-08:00",
            "end": "2024-03-09T09:15:00-08:00",
            "recurrence": {"frequency": "daily", "until": "2024-03-12T09:00:00-07:00"},
        })
        assert isinstance(result, Scheduled)
        assert [o.start.isoformat() for o in result.occurrences] == [
            "2024-03-09T09:00:00-08:00",
            "2024-03-10T09:00:00-07:00",
            "2024-03-11T09:00:00-07:00",
            "2024-03-12T09:00:00-07:00",
        ]

    @pytest.mark.asyncio
    async def test_non_mapping_rejected(self, service: SchedulingService) -> None:
        result = await service.schedule(["not", "a", "mapping"])  # type: ignore[arg-type]
        assert isinstance(result, Rejected)
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_export_failure_keeps_event(
        self, service: SchedulingService, store: EventStore, mock_exporter,
    ) -> None:
        """A failed export is reported distinctly and the event stays queryable."""
        failure = TransportFailure(retryable=True, message="Backend Error", status_code=503)
        mock_exporter.export.return_value = failure

        result = await service.schedule(STANDUP)

        assert isinstance(result, ScheduledExportFailed)
        assert result.persisted is True
        assert result.export_error == failure
        stored = await store.get(result.event_id)
        assert stored.export_status == ExportStatus.FAILED
        assert "Backend Error" in stored.last_export_error

    @pytest.mark.asyncio
    async def test_cancelled_export(self, service: SchedulingService, store: EventStore, mock_exporter) -> None:
        mock_exporter.export.return_value = ExportCancelled(reason="stop")
        result = await service.schedule(STANDUP)
        assert isinstance(result, ScheduledExportFailed)
        assert (await store.get(result.event_id)).export_status == ExportStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_signal_passed_through(self, service: SchedulingService, mock_exporter) -> None:
        cancel = asyncio.Event()
        await service.schedule(STANDUP, cancel)
        assert mock_exporter.export.await_args.args[1] is cancel

    @pytest.mark.asyncio
    async def test_saved_before_export(self, store: EventStore, mock_exporter) -> None:
        """The exporter already sees the event in the store."""
        seen = []

        async def export(event, cancel=None):
            seen.append(await store.get(event.id))
            return ExportSuccess("p")

        mock_exporter.export = AsyncMock(side_effect=export)
        service = SchedulingService(store, mock_exporter)
        result = await service.schedule(STANDUP)
        assert seen and seen[0].id == result.event_id

    @pytest.mark.asyncio
    async def test_concurrent_schedules(self, service: SchedulingService, store: EventStore) -> None:
        """Many concurrent schedules all persist with no lost update."""
        requests = [
            {**STANDUP, "title": f"Meeting {i}", "recurrence": {"frequency": "weekly", "count": 2}}
            for i in range(50)
        ]
        results = await asyncio.gather(*(service.schedule(r) for r in requests))

        assert all(isinstance(r, Scheduled) for r in results)
        ids = {r.event_id for r in results}
        assert len(ids) == 50
        assert len(store) == 50
        titles = {(await store.get(event_id)).title for event_id in ids}
        assert titles == {f"Meeting {i}" for i in range(50)}


class TestReexport:
    """Tests for SchedulingService.reexport."""

    @pytest.mark.asyncio
    async def test_reexport_after_failure(self, service: SchedulingService, store: EventStore, mock_exporter) -> None:
        mock_exporter.export.return_value = ProviderRejection(401, RejectionClass.CLIENT_ERROR, "expired")
        first = await service.schedule(STANDUP)
        assert isinstance(first, ScheduledExportFailed)

        mock_exporter.export.return_value = ExportSuccess("provider-2")
        second = await service.reexport(first.event_id)

        assert isinstance(second, Scheduled)
        assert second.event_id == first.event_id
        assert len(second.occurrences) == 4
        stored = await service.get_event(first.event_id)
        assert stored.export_status == ExportStatus.EXPORTED
        assert stored.provider_event_id == "provider-2"
        assert stored.last_export_error == ""

    @pytest.mark.asyncio
    async def test_reexport_of_exported_event_sends_nothing(
        self, service: SchedulingService, mock_exporter,
    ) -> None:
        first = await service.schedule(STANDUP)
        again = await service.reexport(first.event_id)

        assert again == Scheduled(
            event_id=first.event_id,
            provider_event_id="provider-1",
            occurrences=first.occurrences,
        )
        assert mock_exporter.export.await_count == 1

    @pytest.mark.asyncio
    async def test_reexport_missing(self, service: SchedulingService) -> None:
        with pytest.raises(EventNotFound):
            await service.reexport("missing")


class TestWiredPipeline:
    """Full pipeline against a scripted provider."""

    @pytest.mark.asyncio
    async def test_retry_then_success(self, settings, provider, http_client) -> None:
        provider.queue(
            httpx.Response(503, json={"error": {"message": "Backend Error"}}),
            httpx.Response(429, json={"error": {"message": "Rate Limit Exceeded"}}),
        )
        service = create_scheduling_service(settings, http_client=http_client)

        result = await service.schedule(STANDUP)

        assert isinstance(result, Scheduled)
        assert len(provider.requests) == 3
        body = provider.bodies()[-1]
        assert body["start"] == {"dateTime": "2024-03-09T09:00:00-08:00", "timeZone": "America/Los_Angeles"}
        assert body["recurrence"] == ["RRULE:FREQ=DAILY;INTERVAL=1;UNTIL=20240312T160000Z"]

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self, settings, provider, http_client) -> None:
        provider.queue(httpx.Response(401, json={"error": {"message": "Invalid Credentials"}}))
        service = create_scheduling_service(settings, http_client=http_client)

        result = await service.schedule(STANDUP)

        assert isinstance(result, ScheduledExportFailed)
        assert isinstance(result.export_error, ProviderRejection)
        assert result.export_error.message == "Invalid Credentials"
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_retry_ceiling(self, settings, provider, http_client) -> None:
        provider.queue(*[httpx.Response(500, text="oops") for _ in range(10)])
        service = create_scheduling_service(settings, http_client=http_client)

        result = await service.schedule(STANDUP)

        assert isinstance(result, ScheduledExportFailed)
        assert result.export_error == TransportFailure(retryable=True, message="oops", status_code=500)
        assert len(provider.requests) == settings.export_max_attempts

    @pytest.mark.asyncio
    async def test_expanded_partial_export_is_recorded_and_resumed(
        self, settings, provider, http_client, store: EventStore,
    ) -> None:
        """A rejection on the third occurrence keeps the two created ids; reexport finishes the rest."""
        provider.queue(
            httpx.Response(200, json={"id": "a"}),
            httpx.Response(200, json={"id": "b"}),
            httpx.Response(400, json={"error": {"message": "Bad Request"}}),
        )
        expand_settings = settings.model_copy(update={"export_strategy": ExportStrategy.EXPAND})
        service = create_scheduling_service(expand_settings, store=store, http_client=http_client)

        first = await service.schedule(STANDUP)

        assert isinstance(first, ScheduledExportFailed)
        assert first.export_error.completed_ids == ("a", "b")
        stored = await store.get(first.event_id)
        assert stored.export_status == ExportStatus.FAILED
        assert stored.provider_event_ids == ("a", "b")
        assert stored.provider_event_id == "a"

        second = await service.reexport(first.event_id)

        assert isinstance(second, Scheduled)
        assert len(provider.requests) == 5
        starts = [body["start"]["dateTime"] for body in provider.bodies()[3:]]
        assert starts == ["2024-03-11T09:00:00-07:00", "2024-03-12T09:00:00-07:00"]
        stored = await store.get(first.event_id)
        assert stored.export_status == ExportStatus.EXPORTED
        assert stored.provider_event_ids == ("a", "b", "evt-1", "evt-2")
