"""Composition root: builds the scheduling object graph from settings."""

from __future__ import annotations

import datetime as dt
from typing import Optional

import httpx

from calsched.config import Settings, get_settings
from calsched.logging_config import get_logger
from calsched.modules.calendar.client import CalendarClient
from calsched.modules.calendar.exporter import CalendarExporter
from calsched.modules.calendar.store import EventStore
from calsched.modules.recurrence.engine import RecurrenceEngine
from calsched.modules.scheduling.service import SchedulingService

logger = get_logger(__name__)


def create_scheduling_service(
    settings: Optional[Settings] = None,
    store: Optional[EventStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SchedulingService:
    """Wire store, client, exporter and service together."""
    settings = settings or get_settings()
    if not settings.has_credentials:
        logger.warning("provider_access_token_missing")

    horizon = dt.timedelta(days=settings.expansion_horizon_days)
    engine = RecurrenceEngine()
    client = CalendarClient(
        base_url=settings.provider_base_url,
        access_token=settings.provider_access_token,
        calendar_id=settings.provider_calendar_id,
        timeout=settings.provider_timeout_seconds,
        http_client=http_client,
    )
    exporter = CalendarExporter(
        client,
        max_attempts=settings.export_max_attempts,
        backoff_base=settings.export_backoff_base,
        backoff_max=settings.export_backoff_max,
        strategy=settings.export_strategy,
        engine=engine,
        horizon=horizon,
    )
    logger.debug(
        "scheduling_service_created",
        base_url=settings.provider_base_url,
        calendar_id=settings.provider_calendar_id,
        strategy=settings.export_strategy.value,
    )
    return SchedulingService(
        store=store or EventStore(),
        exporter=exporter,
        engine=engine,
        default_timezone=settings.default_timezone,
        preview_horizon=horizon,
    )
