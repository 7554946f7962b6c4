"""Error taxonomy shared by the scheduling and export pipeline.

Provider rejections and transport failures are not exceptions: the client
reports them as result values (see ``calsched.modules.calendar.models``) so
the exporter can decide on retries without unwinding the stack.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every error raised by calsched."""

    code = "scheduling_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])

    def to_dict(self) -> dict[str, str]:
        """Serialize the error for logs and CLI output."""
        return {"code": self.code, "message": self.message}


class ValidationError(SchedulingError):
    """Malformed request or event fields."""

    code = "validation_error"


class InvalidEvent(ValidationError):
    """Event is not in an exportable shape."""

    code = "invalid_event"


class TimeParseError(SchedulingError):
    """Timestamp is not a round-trip ISO-8601 value with an explicit offset."""

    code = "time_parse_error"


class RecurrenceError(SchedulingError):
    """Recurrence rule failed validation."""

    code = "recurrence_error"


class InvalidFrequency(RecurrenceError):
    """Frequency must be one of DAILY, WEEKLY, MONTHLY, YEARLY."""

    code = "invalid_frequency"


class InvalidInterval(RecurrenceError):
    """Interval must be a positive integer."""

    code = "invalid_interval"


class InvalidCount(RecurrenceError):
    """Count must be a positive integer."""

    code = "invalid_count"


class InvalidUntil(RecurrenceError):
    """Until must carry an explicit offset."""

    code = "invalid_until"


class AmbiguousTermination(RecurrenceError):
    """Only one of count or until may be given."""

    code = "ambiguous_termination"


class MissingTermination(RecurrenceError):
    """One of count or until is required."""

    code = "missing_termination"


class EmptyRecurrence(RecurrenceError):
    """Recurrence produces no occurrences."""

    code = "empty_recurrence"


class EventNotFound(SchedulingError):
    """No event is stored under the given id."""

    code = "event_not_found"

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class OperationCancelled(SchedulingError):
    """Operation aborted by the caller's cancel signal."""

    code = "cancelled"
