"""Data models for calendar events and export outcomes."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from calsched.modules.recurrence.models import ValidatedRule


class ExportStatus(StrEnum):
    """Export state annotated on a stored event."""

    PENDING = "pending"
    EXPORTED = "exported"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CalendarEvent(BaseModel):
    """Calendar event accepted for scheduling.

    Instances are frozen. The store replaces them with updated copies when
    recording export status.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    start: dt.datetime
    end: dt.datetime
    timezone: Optional[str] = None
    recurrence: Optional[ValidatedRule] = None
    description: str = ""
    export_status: ExportStatus = ExportStatus.PENDING
    provider_event_id: str = ""
    provider_event_ids: tuple[str, ...] = ()
    last_export_error: str = ""
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
    updated_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("timestamps must carry an explicit offset")
        return value

    @model_validator(mode="after")
    def _start_before_end(self) -> CalendarEvent:
        if self.start.astimezone(dt.UTC) >= self.end.astimezone(dt.UTC):
            raise ValueError("end must be after start")
        return self

    @property
    def duration(self) -> dt.timedelta:
        """Absolute event duration."""
        return self.end - self.start

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


@dataclass(frozen=True)
class ExportSuccess:
    """Provider accepted the event."""

    provider_event_id: str
    provider_event_ids: tuple[str, ...] = ()

    ok = True

    def __post_init__(self) -> None:
        if not self.provider_event_ids:
            object.__setattr__(self, "provider_event_ids", (self.provider_event_id,))

    def describe(self) -> str:
        return f"exported as {self.provider_event_id}"


class RejectionClass(StrEnum):
    """Coarse category of a provider rejection."""

    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProviderRejection:
    """Provider refused the request. Never retried."""

    status_code: int
    status_class: RejectionClass
    message: str
    completed_ids: tuple[str, ...] = field(default=())

    ok = False

    def describe(self) -> str:
        return f"rejected by provider ({self.status_code} {self.status_class}): {self.message}"


@dataclass(frozen=True)
class TransportFailure:
    """Delivery failed in transit or the provider asked us to come back later."""

    retryable: bool
    message: str
    status_code: Optional[int] = None
    completed_ids: tuple[str, ...] = field(default=())

    ok = False

    def describe(self) -> str:
        status = f" ({self.status_code})" if self.status_code is not None else ""
        return f"transport failure{status}: {self.message}"


@dataclass(frozen=True)
class ExportCancelled:
    """Export aborted by the caller's cancel signal."""

    reason: str = "cancelled"
    completed_ids: tuple[str, ...] = field(default=())

    ok = False

    def describe(self) -> str:
        return f"cancelled: {self.reason}"


ExportResult = Union[ExportSuccess, ProviderRejection, TransportFailure, ExportCancelled]
