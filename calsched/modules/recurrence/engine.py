"""Recurrence rule validation and occurrence expansion."""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Iterator, Optional

from dateutil.rrule import rrule

from calsched.errors import (
    AmbiguousTermination,
    InvalidCount,
    InvalidFrequency,
    InvalidInterval,
    InvalidUntil,
    MissingTermination,
)
from calsched.logging_config import get_logger
from calsched.modules.recurrence.models import Frequency, Occurrence, RecurrenceRule, ValidatedRule
from calsched.timestamps import Zone, localize, resolve_zone

if TYPE_CHECKING:
    from calsched.modules.calendar.models import CalendarEvent

logger = get_logger(__name__)


class RecurrenceEngine:
    """Validates recurrence rules and expands them into occurrences.

    Expansion runs dateutil.rrule over the event's local wall-clock time and
    recomputes the UTC offset for every date. A daily 09:00 event therefore
    stays at 09:00 local across DST transitions.
    """

    def validate(self, rule: RecurrenceRule) -> ValidatedRule:
        """Check a raw rule and normalize it.

        Raises:
            InvalidFrequency: Frequency token outside the supported set.
            InvalidInterval: Interval given but not positive.
            InvalidCount: Count given but not positive.
            InvalidUntil: Until without an offset.
            AmbiguousTermination: Both count and until given.
            MissingTermination: Neither count nor until given.
        """
        token = rule.frequency.strip().upper() if isinstance(rule.frequency, str) else ""
        try:
            frequency = Frequency(token)
        except ValueError:
            raise InvalidFrequency(
                f"Unsupported frequency {rule.frequency!r}; "
                f"expected one of {', '.join(f.value for f in Frequency)}"
            ) from None

        interval = 1 if rule.interval is None else rule.interval
        if interval <= 0:
            raise InvalidInterval(f"Interval must be positive, got {interval}")

        if rule.count is not None and rule.until is not None:
            raise AmbiguousTermination("Recurrence may specify count or until, not both")
        if rule.count is None and rule.until is None:
            raise MissingTermination("Recurrence requires either count or until")
        if rule.count is not None and rule.count <= 0:
            raise InvalidCount(f"Count must be positive, got {rule.count}")
        if rule.until is not None and rule.until.utcoffset() is None:
            raise InvalidUntil("Until must carry an explicit offset")

        return ValidatedRule(
            frequency=frequency,
            interval=interval,
            count=rule.count,
            until=rule.until,
        )

    def expand(
        self,
        event: CalendarEvent,
        rule: ValidatedRule,
        horizon: Optional[dt.datetime] = None,
    ) -> Iterator[Occurrence]:
        """Lazily yield occurrences of ``event`` under ``rule``.

        ``rule`` must already be validated. ``horizon`` optionally caps the
        last occurrence start (inclusive). Dates follow RFC 5545 RRULE
        semantics, so a monthly rule on the 31st skips shorter months, exactly
        as the provider does with the rule it receives.
        """
        zone = self.zone_for(event)
        origin = event.start.astimezone(zone).replace(tzinfo=None)
        duration = event.duration
        until_utc = rule.until.astimezone(dt.UTC) if rule.until is not None else None
        horizon_utc = horizon.astimezone(dt.UTC) if horizon is not None else None

        wall_times = rrule(
            rule.frequency.rrule_freq,
            dtstart=origin,
            interval=rule.interval,
            count=rule.count,
            cache=False,
        )
        for index, wall_time in enumerate(wall_times):
            # rrule drops sub-second precision from dtstart
            start = localize(wall_time.replace(microsecond=origin.microsecond), zone)
            start_utc = start.astimezone(dt.UTC)
            if until_utc is not None and start_utc > until_utc:
                return
            if horizon_utc is not None and start_utc > horizon_utc:
                logger.debug("recurrence_horizon_reached", event_id=event.id, index=index)
                return
            yield Occurrence(index=index, start=start, end=(start_utc + duration).astimezone(zone))

    @staticmethod
    def zone_for(event: CalendarEvent) -> Zone:
        """Zone used for wall-clock arithmetic on ``event``."""
        if event.timezone:
            return resolve_zone(event.timezone)
        return event.start.tzinfo
