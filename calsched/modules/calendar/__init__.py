"""Calendar events, in-memory storage and provider export."""

from calsched.modules.calendar.models import (
    CalendarEvent,
    ExportCancelled,
    ExportResult,
    ExportStatus,
    ExportSuccess,
    ProviderRejection,
    TransportFailure,
)
from calsched.modules.calendar.store import EventStore
from calsched.modules.calendar.client import CalendarClient
from calsched.modules.calendar.exporter import BaseCalendarExporter, CalendarExporter

__all__ = [
    "BaseCalendarExporter",
    "CalendarClient",
    "CalendarEvent",
    "CalendarExporter",
    "EventStore",
    "ExportCancelled",
    "ExportResult",
    "ExportStatus",
    "ExportSuccess",
    "ProviderRejection",
    "TransportFailure",
]
