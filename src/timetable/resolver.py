"""Turns a create that hit the uniqueness rule into an update of the occupant.

Dragging a course onto a cell the instructor already occupies is a normal
"replace" gesture in the grid. When the local cache did not know about the
occupant, the insert fails with 23505 and ConflictResolver takes over:

1. read every row of (year, week_number, day_of_week, instructor_id) from the
   table, since the local cache may be stale;
2. pick the row whose normalized time_slot equals the attempted one, else the
   first row (logged separately, it can hide a double booking upstream);
3. update that row with the dragged course/duration/times and schedule a
   delayed full re-fetch;
4. with no row visible at all, re-fetch and ask the user to retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from src.timetable.errors import (
    ConflictUnresolvedError,
    FetchError,
    RemoteError,
    ScheduleError,
    StaleWeekError,
    UniqueConstraintViolation,
)
from src.timetable.logging import get_logger
from src.timetable.messages import message
from src.timetable.models import CourseInfo, ScheduleEntry
from src.timetable.notify import safe_notify
from src.timetable.slots import WeekBucket, normalize_time

if TYPE_CHECKING:
    from src.timetable.store import ScheduleStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConflictAttempt:
    """The create that collided, as the store computed it."""

    generation: int
    week: WeekBucket
    day_of_week: int
    time_slot: str
    instructor_id: str | None
    patch: dict[str, Any] = field(default_factory=dict)


class ConflictResolver:
    def __init__(self, store: ScheduleStore) -> None:
        self.store = store

    async def resolve(self, attempt: ConflictAttempt) -> ScheduleEntry:
        """Overwrite the conflicting row with the attempted booking.

        Raises:
            ConflictUnresolvedError: No candidate row is visible.
            UniqueConstraintViolation: The lookup or the update failed.
            StaleWeekError: The displayed week changed meanwhile.
        """
        store = self.store
        locale = store.locale
        log = logger.bind(
            day_of_week=attempt.day_of_week,
            time_slot=attempt.time_slot,
            instructor_id=attempt.instructor_id,
        )
        log.info("conflict_resolution_started")

        try:
            rows = await store.table.select(
                {
                    "year": attempt.week.year,
                    "week_number": attempt.week.week_number,
                    "day_of_week": attempt.day_of_week,
                    "instructor_id": attempt.instructor_id,
                }
            )
        except RemoteError as e:
            store.ensure_current(attempt.generation, "conflict_lookup")
            log.error("conflict_lookup_failed", error=e.message, code=e.code)
            raise UniqueConstraintViolation(
                e.message, user_message=message("instructor_booked", locale)
            ) from e
        store.ensure_current(attempt.generation, "conflict_lookup")

        if not rows:
            log.warning("conflict_without_candidate")
            try:
                await store.list()
            except FetchError as e:
                log.warning("conflict_refetch_failed", error=str(e))
            raise ConflictUnresolvedError(
                "Unique constraint violated but no conflicting row is visible",
                user_message=message("conflict_reload", locale),
            )

        wanted = normalize_time(attempt.time_slot)
        candidate = next(
            (r for r in rows if normalize_time(r.get("time_slot")) == wanted), None
        )
        if candidate is not None:
            log.info("conflict_exact_candidate", record_id=candidate.get("id"))
        else:
            candidate = rows[0]
            log.warning(
                "conflict_fallback_candidate",
                record_id=candidate.get("id"),
                candidate_slot=candidate.get("time_slot"),
                candidates=len(rows),
            )

        try:
            entry = await store.update(candidate["id"], attempt.patch, notify=False)
        except StaleWeekError:
            raise
        except ScheduleError as e:
            log.error("conflict_update_failed", record_id=candidate.get("id"), error=str(e))
            raise UniqueConstraintViolation(
                str(e), user_message=message("instructor_booked", locale)
            ) from e

        store.schedule_refresh(store.conflict_refresh_delay)

        previous_course = CourseInfo.model_validate(candidate.get("teaching_courses") or {})
        safe_notify(
            store.notifier,
            message("conflict_resolved_title", locale),
            message(
                "conflict_resolved",
                locale,
                name=previous_course.name or message("default_entry_name", locale),
            ),
        )
        log.info("conflict_resolved", record_id=entry.id)
        return entry
