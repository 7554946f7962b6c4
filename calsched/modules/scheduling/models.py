"""Inbound request and outcome models for the scheduling use case."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from calsched.errors import SchedulingError
from calsched.modules.calendar.models import ExportResult
from calsched.modules.recurrence.models import Occurrence


class RecurrenceRequest(BaseModel):
    """Recurrence block of an inbound request, timestamps still as text."""

    model_config = ConfigDict(extra="forbid")

    frequency: str
    interval: Optional[int] = None
    count: Optional[int] = None
    until: Optional[str] = None


class SchedulingRequest(BaseModel):
    """Typed request handed over by the front end."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str
    start: str
    end: str
    timezone: Optional[str] = None
    description: str = ""
    recurrence: Optional[RecurrenceRequest] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("timezone")
    @classmethod
    def _blank_timezone_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


@dataclass(frozen=True)
class Scheduled:
    """Event persisted and exported."""

    event_id: str
    provider_event_id: str
    occurrences: tuple[Occurrence, ...] = field(default=())

    ok = True
    persisted = True


@dataclass(frozen=True)
class ScheduledExportFailed:
    """Event persisted but the export did not succeed."""

    event_id: str
    export_error: ExportResult

    ok = False
    persisted = True


@dataclass(frozen=True)
class Rejected:
    """Request rejected before anything was persisted."""

    error: SchedulingError

    ok = False
    persisted = False


SchedulingResult = Union[Scheduled, ScheduledExportFailed, Rejected]
