"""Shared test fixtures and configuration."""

from __future__ import annotations

import json
import os
from typing import Callable

import httpx
import pytest

os.environ.setdefault("CALSCHED_ENV", "test")
os.environ.setdefault("CALSCHED_LOG_LEVEL", "WARNING")
os.environ.setdefault("PROVIDER_ACCESS_TOKEN", "test-token-do-not-use")

from calsched.config import Settings
from calsched.logging_config import setup_logging
from calsched.modules.calendar.client import CalendarClient
from calsched.modules.calendar.store import EventStore

BASE_URL = "https://calendar.test/v3"
EVENTS_URL = f"{BASE_URL}/calendars/primary/events"


@pytest.fixture(autouse=True, scope="session")
def quiet_logging() -> None:
    """Configure test-mode logging: warnings and errors only."""
    setup_logging(Settings(calsched_env="test", calsched_log_level="WARNING", _env_file=None))


@pytest.fixture
def settings() -> Settings:
    """Return test settings."""
    return Settings(
        calsched_env="test",
        calsched_log_level="WARNING",
        provider_base_url=BASE_URL,
        provider_access_token="test-token",
        provider_calendar_id="primary",
        export_max_attempts=4,
        export_backoff_base=0,
        _env_file=None,
    )


@pytest.fixture
def store() -> EventStore:
    """Provide an empty event store."""
    return EventStore()


class ProviderStub:
    """Scripted provider behind an httpx.MockTransport.

    Each queued response is either an ``httpx.Response`` or an exception
    instance to raise. When the queue runs dry every request succeeds.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._script: list[httpx.Response | Exception] = []
        self._next_id = 0

    def queue(self, *responses: httpx.Response | Exception) -> None:
        self._script.extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._script:
            item = self._script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        self._next_id += 1
        return httpx.Response(200, json={"id": f"evt-{self._next_id}"})

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def provider() -> ProviderStub:
    """Provide a scripted provider."""
    return ProviderStub()


@pytest.fixture
def http_client(provider: ProviderStub):
    """httpx.AsyncClient routed to the scripted provider."""
    return httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def make_client(http_client) -> Callable[..., CalendarClient]:
    """Factory for CalendarClient instances bound to the scripted provider."""

    def _make(**kwargs) -> CalendarClient:
        params = {
            "base_url": BASE_URL,
            "access_token": "test-token",
            "calendar_id": "primary",
            "http_client": http_client,
        }
        params.update(kwargs)
        return CalendarClient(**params)

    return _make
