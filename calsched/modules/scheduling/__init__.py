"""Scheduling use case."""

from calsched.modules.scheduling.service import SchedulingService
from calsched.modules.scheduling.models import (
    Rejected,
    Scheduled,
    ScheduledExportFailed,
    SchedulingRequest,
    SchedulingResult,
)

__all__ = [
    "Rejected",
    "Scheduled",
    "ScheduledExportFailed",
    "SchedulingRequest",
    "SchedulingResult",
    "SchedulingService",
]
