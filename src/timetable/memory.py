"""In-process backend: schedule table, instructor directory and change feed.

Behaves like the hosted table where it matters to the engine:

- the (year, week_number, day_of_week, time_slot, instructor_id) uniqueness
  rule fails with code 23505, compared on the raw stored values as Postgres
  would;
- the day/time range check fails with code 23514;
- updates matching no row fail with PGRST116;
- every write is pushed to subscribers as a bare row (no joins), on a later
  event-loop turn, and deletes only carry the primary key unless
  ``full_replica_identity`` is set.

Used by the test-suite and the offline demo script.
"""

import asyncio
import copy
import itertools
from collections import defaultdict
from typing import Any, Mapping, Sequence

from src.timetable.errors import CHECK_VIOLATION, UNIQUE_VIOLATION, InvalidSlotError, RemoteError
from src.timetable.logging import get_logger
from src.timetable.models import ChangeEvent
from src.timetable.postgrest import NO_ROWS
from src.timetable.remote import (
    CLOSED,
    SUBSCRIBED,
    EventCallback,
    StatusCallback,
)
from src.timetable.slots import slot_index_of

logger = get_logger(__name__)

UNIQUE_COLUMNS = ("year", "week_number", "day_of_week", "time_slot", "instructor_id")
UNIQUE_CONSTRAINT = "weekly_schedules_unique_instructor_slot"


class MemorySubscription:
    def __init__(self, backend: "MemoryBackend", token: int) -> None:
        self._backend = backend
        self._token = token

    def unsubscribe(self) -> None:
        self._backend._unsubscribe(self._token)


class MemoryBackend:
    """Table + directory + change feed kept in dictionaries."""

    def __init__(
        self,
        *,
        courses: Mapping[Any, Mapping[str, Any]] | None = None,
        profiles: Mapping[str, Mapping[str, Any]] | None = None,
        full_replica_identity: bool = False,
        deliver_events_inline: bool = False,
        latency: float = 0.0,
    ) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.courses = {k: dict(v) for k, v in (courses or {}).items()}
        self.profiles = {k: dict(v) for k, v in (profiles or {}).items()}
        self.full_replica_identity = full_replica_identity
        self.deliver_events_inline = deliver_events_inline
        self.latency = latency
        self.calls: dict[str, int] = defaultdict(int)
        self._ids = itertools.count(1)
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._subscribers: dict[int, tuple[str, EventCallback, StatusCallback | None]] = {}
        self._tokens = itertools.count(1)

    # ── Test controls ──

    def seed(self, row: Mapping[str, Any], *, notify: bool = False) -> dict[str, Any]:
        """Store a row directly, bypassing constraints. Returns it with its id."""
        stored = dict(row)
        stored.setdefault("id", next(self._ids))
        self.rows[stored["id"]] = stored
        if notify:
            self._emit("INSERT", new=stored)
        return self._joined(stored)

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of select/insert/update/delete/profiles raise error."""
        self._failures[operation].append(error)

    def emit(self, event_type: str, new: Mapping[str, Any] | None = None, old: Mapping[str, Any] | None = None) -> None:
        """Push an arbitrary change event (another client's write)."""
        self._emit(event_type, new=dict(new) if new else None, old=dict(old) if old else None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ── ScheduleTable ──

    async def select(
        self,
        filters: Mapping[str, Any],
        *,
        order: Sequence[str] = (),
        columns: str | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("select")
        matched = [
            row
            for row in self.rows.values()
            if all(row.get(col) == value for col, value in filters.items())
        ]
        for column in reversed(order):
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column)))
        if columns == "id":
            return [{"id": row["id"]} for row in matched]
        return [self._joined(row) for row in matched]

    async def insert(self, row: Mapping[str, Any]) -> dict[str, Any]:
        await self._enter("insert")
        candidate = dict(row)
        candidate.pop("id", None)
        self._check(candidate)
        self._check_unique(candidate, exclude_id=None)
        candidate["id"] = next(self._ids)
        self.rows[candidate["id"]] = candidate
        self._emit("INSERT", new=candidate)
        return self._joined(candidate)

    async def update(self, record_id: Any, patch: Mapping[str, Any]) -> dict[str, Any]:
        await self._enter("update")
        current = self.rows.get(record_id)
        if current is None:
            raise RemoteError(
                "JSON object requested, multiple (or no) rows returned",
                code=NO_ROWS,
                details=f"id={record_id}",
            )
        candidate = {**current, **dict(patch), "id": record_id}
        self._check(candidate)
        self._check_unique(candidate, exclude_id=record_id)
        old = dict(current)
        self.rows[record_id] = candidate
        self._emit("UPDATE", new=candidate, old=old)
        return self._joined(candidate)

    async def delete(self, record_id: Any) -> list[dict[str, Any]]:
        await self._enter("delete")
        removed = self.rows.pop(record_id, None)
        if removed is None:
            return []
        old = dict(removed) if self.full_replica_identity else {"id": record_id}
        self._emit("DELETE", old=old)
        return [{"id": record_id}]

    # ── Directory ──

    async def instructor_profiles(self, user_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        await self._enter("profiles")
        return {
            uid: dict(self.profiles[uid]) for uid in dict.fromkeys(user_ids) if uid in self.profiles
        }

    # ── ChangeFeed ──

    def subscribe(
        self,
        channel: str,
        callback: EventCallback,
        on_status: StatusCallback | None = None,
    ) -> MemorySubscription:
        token = next(self._tokens)
        self._subscribers[token] = (channel, callback, on_status)
        logger.debug("memory_feed_subscribed", channel=channel, token=token)
        if on_status is not None:
            on_status(SUBSCRIBED)
        return MemorySubscription(self, token)

    def _unsubscribe(self, token: int) -> None:
        entry = self._subscribers.pop(token, None)
        if entry is not None:
            _, _, on_status = entry
            logger.debug("memory_feed_unsubscribed", channel=entry[0], token=token)
            if on_status is not None:
                on_status(CLOSED)

    # ── Internals ──

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        # Every call is a suspension point, like a network round trip
        await asyncio.sleep(self.latency)
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    def _check(self, row: Mapping[str, Any]) -> None:
        day = row.get("day_of_week")
        duration = row.get("duration", 1)
        try:
            start_index = slot_index_of(row.get("time_slot"))
        except InvalidSlotError:
            start_index = None
        if (
            not isinstance(day, int)
            or not 0 <= day <= 6
            or start_index is None
            or not isinstance(duration, int)
            or duration < 1
        ):
            raise RemoteError(
                'new row for relation "weekly_schedules" violates check constraint',
                code=CHECK_VIOLATION,
                details=f"day_of_week={day}, time_slot={row.get('time_slot')}, duration={duration}",
            )

    def _check_unique(self, row: Mapping[str, Any], exclude_id: Any) -> None:
        key = tuple(row.get(col) for col in UNIQUE_COLUMNS)
        for other in self.rows.values():
            if other["id"] == exclude_id:
                continue
            if tuple(other.get(col) for col in UNIQUE_COLUMNS) == key:
                raise RemoteError(
                    f'duplicate key value violates unique constraint "{UNIQUE_CONSTRAINT}"',
                    code=UNIQUE_VIOLATION,
                    details=f"Key ({', '.join(UNIQUE_COLUMNS)})=({', '.join(map(str, key))}) already exists.",
                )

    def _joined(self, row: Mapping[str, Any]) -> dict[str, Any]:
        joined = copy.deepcopy(dict(row))
        course = self.courses.get(row.get("course_id"))
        joined["teaching_courses"] = dict(course) if course else None
        return joined

    def _emit(
        self,
        event_type: str,
        *,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
    ) -> None:
        event = ChangeEvent(
            event_type=event_type,
            new=copy.deepcopy(new) if new else None,
            old=copy.deepcopy(old) if old else None,
        )
        for token in list(self._subscribers):
            if self.deliver_events_inline:
                self._deliver(token, event)
            else:
                asyncio.get_running_loop().call_soon(self._deliver, token, event)

    def _deliver(self, token: int, event: ChangeEvent) -> None:
        entry = self._subscribers.get(token)
        if entry is None:
            return
        _, callback, _ = entry
        callback(event)
