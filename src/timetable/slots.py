"""Time slot and week bucketing helpers for the teaching grid.

The grid has 13 one-hour rows (08:00-21:00) and 7 day columns. Day indexes
follow the stored column: 0 = Sunday ... 6 = Saturday. Weeks are bucketed by
ISO calendar (Monday start) into (year, week_number) pairs.

Everything in this module is pure: the same input always yields the same
output, so any two dates in one Monday-Sunday span land in the same bucket.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from src.timetable.errors import InvalidSlotError

FIRST_HOUR = 8
SLOT_COUNT = 13  # 08:00 .. 20:00 starts, last slot ends at 21:00


@dataclass(frozen=True)
class TimeSlot:
    index: int
    time: str
    label: str


@dataclass(frozen=True)
class Day:
    index: int
    name: str
    short_name: str
    name_en: str


TIME_SLOTS: tuple[TimeSlot, ...] = tuple(
    TimeSlot(
        index=i,
        time=f"{FIRST_HOUR + i:02d}:00",
        label=f"{FIRST_HOUR + i:02d}:00-{FIRST_HOUR + i + 1:02d}:00",
    )
    for i in range(SLOT_COUNT)
)

DAYS: tuple[Day, ...] = (
    Day(0, "อาทิตย์", "อา.", "Sunday"),
    Day(1, "จันทร์", "จ.", "Monday"),
    Day(2, "อังคาร", "อ.", "Tuesday"),
    Day(3, "พุธ", "พ.", "Wednesday"),
    Day(4, "พฤหัสบดี", "พฤ.", "Thursday"),
    Day(5, "ศุกร์", "ศ.", "Friday"),
    Day(6, "เสาร์", "ส.", "Saturday"),
)


def slot_index_to_time(index: int) -> str:
    """Return the canonical "HH:00" string for a slot index.

    Indexes 0..12 are slot starts. 13 ("21:00") is accepted because it is the
    end time of the last slot.

    Raises:
        InvalidSlotError: If the index is outside 0..13.
    """
    if not 0 <= index <= SLOT_COUNT:
        raise InvalidSlotError(f"Slot index out of range: {index}")
    return f"{FIRST_HOUR + index:02d}:00"


def normalize_time(value: str | None) -> str | None:
    """Left-pad the hour of an "H:MM" / "HH:MM" value to two digits.

    "8:00" -> "08:00". A trailing seconds part ("08:00:00", as returned by
    time columns) is dropped. None and "" pass through unchanged.
    """
    if not value:
        return value
    parts = value.strip().split(":")
    if len(parts) < 2:
        return value
    hour, minute = parts[0], parts[1]
    return f"{hour.zfill(2)}:{minute}"


def slot_index_of(value: str | None) -> int:
    """Return the index of a stored time among the canonical slots.

    Raises:
        InvalidSlotError: If the normalized value is not a canonical slot start.
    """
    normalized = normalize_time(value)
    for slot in TIME_SLOTS:
        if slot.time == normalized:
            return slot.index
    raise InvalidSlotError(f"Invalid time slot: {value}")


def end_time_for(start_index: int, duration: int) -> str:
    """Return the end time of a booking starting at start_index."""
    if duration < 1:
        raise InvalidSlotError(f"Duration must be at least 1 hour, got {duration}")
    if start_index + duration > SLOT_COUNT:
        raise InvalidSlotError(
            f"Booking at slot {start_index} for {duration}h runs past "
            f"{slot_index_to_time(SLOT_COUNT)}"
        )
    return slot_index_to_time(start_index + duration)


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def week_start(value: date | datetime) -> date:
    """Return the Monday of the ISO week containing value."""
    d = _as_date(value)
    return d - timedelta(days=d.weekday())


def iso_week_number(value: date | datetime) -> int:
    """Return the 1-based ISO week number of value."""
    return _as_date(value).isocalendar()[1]


@dataclass(frozen=True)
class WeekBucket:
    """A calendar week as (year, week_number), the partition key of schedule rows."""

    year: int
    week_number: int
    start: date

    @classmethod
    def for_date(cls, value: date | datetime) -> "WeekBucket":
        monday = week_start(value)
        iso_year, iso_week, _ = monday.isocalendar()
        return cls(year=iso_year, week_number=iso_week, start=monday)

    @property
    def end(self) -> date:
        return self.start + timedelta(days=6)

    @property
    def key(self) -> tuple[int, int]:
        return (self.year, self.week_number)

    def contains(self, year: int | None, week_number: int | None) -> bool:
        return (year, week_number) == self.key

    def channel_name(self, tenant: str) -> str:
        return f"schedules-{tenant}-{self.start.isoformat()}"

    def shifted(self, weeks: int) -> "WeekBucket":
        return WeekBucket.for_date(self.start + timedelta(weeks=weeks))

    def __str__(self) -> str:
        return f"{self.year}-W{self.week_number:02d}"
