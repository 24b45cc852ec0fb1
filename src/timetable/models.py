"""Pydantic models for schedule rows, create input and change-feed events.

Rows arrive from the REST layer in snake_case with the course join nested
under ``teaching_courses`` and the instructor profile under ``user_profiles``.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.timetable.slots import normalize_time

TEMP_ID_PREFIX = "temp-"

# Columns written back to the table. Join fields are display-only.
WRITABLE_COLUMNS = (
    "year",
    "week_number",
    "schedule_type",
    "day_of_week",
    "time_slot",
    "start_time",
    "end_time",
    "duration",
    "course_id",
    "instructor_id",
)


class CourseInfo(BaseModel):
    """Denormalized course display data (teaching_courses join)."""

    model_config = ConfigDict(extra="ignore")

    id: int | str | None = None
    name: str | None = None
    company_color: str | None = None
    company: str | None = None
    location: str | None = None
    duration_hours: float | None = None


class InstructorProfile(BaseModel):
    """Instructor display data looked up from user_profiles."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    full_name: str | None = None
    email: str | None = None


class ScheduleEntry(BaseModel):
    """One instructor teaching one course in one (day, slot) cell of a week."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str
    year: int
    week_number: int
    schedule_type: str = "weekends"
    day_of_week: int = Field(ge=0, le=6)
    time_slot: str
    start_time: str | None = None
    end_time: str | None = None
    duration: int = Field(default=1, ge=1)
    course_id: int | str | None = None
    instructor_id: str | None = None

    course: CourseInfo | None = Field(default=None, alias="teaching_courses")
    instructor_profile: InstructorProfile | None = Field(
        default=None, alias="user_profiles"
    )

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.id, str) and self.id.startswith(TEMP_ID_PREFIX)

    @property
    def normalized_slot(self) -> str | None:
        return normalize_time(self.time_slot)

    @property
    def display_name(self) -> str | None:
        return self.course.name if self.course else None

    def occupies(self, day_of_week: int, time_slot: str, instructor_id: str | None) -> bool:
        """True if this entry sits in the given cell for the given instructor."""
        return (
            self.day_of_week == day_of_week
            and self.normalized_slot == normalize_time(time_slot)
            and self.instructor_id == instructor_id
        )

    def to_row(self) -> dict[str, Any]:
        """Writable columns only, never the display joins."""
        return self.model_dump(include=set(WRITABLE_COLUMNS))

    def with_display_from(self, other: "ScheduleEntry") -> "ScheduleEntry":
        """Fill missing join data from an older copy of the same row.

        Change-feed payloads carry bare table rows. The course join is only
        reused while the course is unchanged.
        """
        updates: dict[str, Any] = {}
        if self.course is None and other.course is not None and other.course_id == self.course_id:
            updates["course"] = other.course
        if (
            self.instructor_profile is None
            and other.instructor_profile is not None
            and other.instructor_id == self.instructor_id
        ):
            updates["instructor_profile"] = other.instructor_profile
        return self.model_copy(update=updates) if updates else self

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ScheduleEntry":
        return cls.model_validate(row)


class ScheduleInput(BaseModel):
    """Create input from a drag-drop of a course/instructor pair onto a cell.

    day_of_week and time_slot_index are optional here so that absence can be
    reported as a MissingFieldError by the store. Zero is a legal value.
    """

    day_of_week: int | None = Field(default=None, ge=0, le=6)
    time_slot_index: int | None = Field(default=None, ge=0, le=12)
    duration: int = Field(default=1, ge=1)
    course_id: int | str | None = None
    instructor_id: str | None = None
    course_data: CourseInfo | None = None


EventType = Literal["INSERT", "UPDATE", "DELETE"]


class ChangeEvent(BaseModel):
    """One message from the change feed: {eventType, new, old}."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: EventType = Field(alias="eventType")
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @field_validator("event_type", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("new", "old", mode="before")
    @classmethod
    def _empty_to_none(cls, value: Any) -> Any:
        return value or None

    @property
    def record(self) -> dict[str, Any]:
        return self.new or self.old or {}

    @property
    def record_id(self) -> Any:
        return self.record.get("id")

    @property
    def week_key(self) -> tuple[Any, Any]:
        record = self.record
        return (record.get("year"), record.get("week_number"))
