"""Optimistic sync engine for the weekly teaching-schedule grid.

Keeps a local view of one week of weekly_schedules consistent with the hosted
table and its change feed: optimistic writes, conflict-driven upserts and
echo-suppressed realtime updates.
"""

from src.timetable.errors import (
    ConflictUnresolvedError,
    CreateError,
    FetchError,
    InvalidSlotError,
    MissingFieldError,
    ScheduleError,
    StaleWeekError,
    UniqueConstraintViolation,
    UpdateError,
)
from src.timetable.models import ChangeEvent, ScheduleEntry, ScheduleInput
from src.timetable.slots import DAYS, TIME_SLOTS, WeekBucket
from src.timetable.store import ScheduleStore

__all__ = [
    "ScheduleStore",
    "ScheduleEntry",
    "ScheduleInput",
    "ChangeEvent",
    "WeekBucket",
    "TIME_SLOTS",
    "DAYS",
    "ScheduleError",
    "FetchError",
    "CreateError",
    "UpdateError",
    "UniqueConstraintViolation",
    "ConflictUnresolvedError",
    "InvalidSlotError",
    "MissingFieldError",
    "StaleWeekError",
]
