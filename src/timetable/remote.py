"""Boundary contracts for the services the engine talks to.

The schedule table, the instructor directory and the change feed are external
collaborators. The store only depends on these protocols; postgrest.py and
memory.py provide the implementations.
"""

from typing import Any, Callable, Mapping, Protocol, Sequence

from src.timetable.models import ChangeEvent

COURSE_JOIN_COLUMNS = (
    "id",
    "name",
    "company_color",
    "company",
    "location",
    "duration_hours",
)
PROFILE_COLUMNS = ("user_id", "full_name", "email")

# Order used by the grid when listing a week
WEEK_ORDER = ("day_of_week", "time_slot")

# Subscription status values reported by the change feed
SUBSCRIBED = "SUBSCRIBED"
CLOSED = "CLOSED"
CHANNEL_ERROR = "CHANNEL_ERROR"


class ScheduleTable(Protocol):
    """The weekly_schedules table. Every call returns rows with the course join."""

    async def select(
        self,
        filters: Mapping[str, Any],
        *,
        order: Sequence[str] = (),
        columns: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def insert(self, row: Mapping[str, Any]) -> dict[str, Any]:
        ...

    async def update(self, record_id: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        ...

    async def delete(self, record_id: Any) -> list[dict[str, Any]]:
        ...


class Directory(Protocol):
    """Read-only instructor lookups."""

    async def instructor_profiles(self, user_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        ...


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        ...


EventCallback = Callable[[ChangeEvent], None]
StatusCallback = Callable[[str], None]


class ChangeFeed(Protocol):
    """Push channel delivering every write to the table, unfiltered by week."""

    def subscribe(
        self,
        channel: str,
        callback: EventCallback,
        on_status: StatusCallback | None = None,
    ) -> Subscription:
        ...
