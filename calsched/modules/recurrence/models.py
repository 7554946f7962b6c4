"""Data models for recurrence rules and expanded occurrences."""

from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Optional

from dateutil import rrule as rr
from pydantic import BaseModel, ConfigDict

from calsched.timestamps import format_rrule_until


class Frequency(StrEnum):
    """Supported recurrence frequencies."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def rrule_freq(self) -> int:
        """dateutil.rrule frequency constant."""
        return {
            Frequency.DAILY: rr.DAILY,
            Frequency.WEEKLY: rr.WEEKLY,
            Frequency.MONTHLY: rr.MONTHLY,
            Frequency.YEARLY: rr.YEARLY,
        }[self]


class RecurrenceRule(BaseModel):
    """Unvalidated recurrence rule as received from a caller."""

    frequency: str
    interval: Optional[int] = None
    count: Optional[int] = None
    until: Optional[dt.datetime] = None


class ValidatedRule(BaseModel):
    """Recurrence rule that passed RecurrenceEngine.validate."""

    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = 1
    count: Optional[int] = None
    until: Optional[dt.datetime] = None

    def to_rrule(self) -> str:
        """Render the rule in the provider's RRULE grammar."""
        parts = [f"FREQ={self.frequency.value}", f"INTERVAL={self.interval}"]
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        else:
            parts.append(f"UNTIL={format_rrule_until(self.until)}")
        return ";".join(parts)


class Occurrence(BaseModel):
    """A single expanded instance of a recurring event."""

    model_config = ConfigDict(frozen=True)

    index: int
    start: dt.datetime
    end: dt.datetime
