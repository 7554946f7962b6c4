"""Recurrence rule validation and expansion."""

from calsched.modules.recurrence.engine import RecurrenceEngine
from calsched.modules.recurrence.models import Frequency, Occurrence, RecurrenceRule, ValidatedRule

__all__ = ["Frequency", "Occurrence", "RecurrenceEngine", "RecurrenceRule", "ValidatedRule"]
