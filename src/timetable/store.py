"""ScheduleStore - optimistic local view of one week of the teaching grid.

The store owns the list of ScheduleEntry rows the grid renders. Every write is
reflected locally before or right after the remote call resolves:

  create  optimistic row with a temp- id -> remote insert -> swap in the server
          row (or remove the temp row on failure). A collision with the
          uniqueness rule is handed to ConflictResolver.
  update  remote update -> replace the local row with the server row.
  remove  remote delete -> follow-up existence read -> drop the local row.

The change feed (feed.py) applies other clients' writes to the same list.
Switching weeks bumps a generation counter; results of operations started
under an older generation are discarded and reported as StaleWeekError.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from src.timetable.cache import Clock, TTLCache
from src.timetable.config import TimetableConfig, get_config
from src.timetable.errors import (
    CheckConstraintViolation,
    CreateError,
    DeleteError,
    FetchError,
    InvalidInputError,
    InvalidSlotError,
    MissingFieldError,
    RemoteError,
    ScheduleError,
    ScheduleNotFoundError,
    StaleWeekError,
    UniqueConstraintViolation,
    UpdateError,
)
from src.timetable.feed import ChangeFeedListener
from src.timetable.logging import bind_week_context, clear_week_context, get_logger
from src.timetable.messages import message
from src.timetable.models import (
    TEMP_ID_PREFIX,
    InstructorProfile,
    ScheduleEntry,
    ScheduleInput,
)
from src.timetable.notify import LogNotifier, Notifier, safe_notify
from src.timetable.recent import RecentWrites
from src.timetable.remote import WEEK_ORDER, ChangeFeed, Directory, ScheduleTable
from src.timetable.resolver import ConflictAttempt, ConflictResolver
from src.timetable.slots import (
    WeekBucket,
    end_time_for,
    normalize_time,
    slot_index_of,
    slot_index_to_time,
)

logger = get_logger(__name__)

EntriesListener = Callable[[list[ScheduleEntry]], None]


class ScheduleStore:
    """Local, optimistically updated schedule for one tenant and week."""

    def __init__(
        self,
        table: ScheduleTable,
        *,
        directory: Directory | None = None,
        feed: ChangeFeed | None = None,
        notifier: Notifier | None = None,
        tenant: str | None = None,
        week: date | datetime | WeekBucket | None = None,
        config: TimetableConfig | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        config = config or get_config()
        self.table = table
        self.directory = directory
        self.feed = feed
        self.notifier = notifier or LogNotifier()
        self.tenant = tenant or config.tenant
        self.schedule_type = config.schedule_type
        self.locale = config.locale
        self.conflict_refresh_delay = config.conflict_refresh_delay_seconds
        self.week = week if isinstance(week, WeekBucket) else WeekBucket.for_date(week or date.today())

        self.recent = RecentWrites(
            write_window=config.create_echo_window_seconds,
            delete_window=config.delete_echo_window_seconds,
            clock=clock,
        )
        self.profiles: TTLCache[str, InstructorProfile] = TTLCache(
            config.profile_cache_ttl_seconds, clock=clock
        )
        self.resolver = ConflictResolver(self)
        self.listener = ChangeFeedListener(self) if feed is not None else None

        self.loading = False
        self.error: str | None = None
        self.connected = False

        self._entries: list[ScheduleEntry] = []
        self._generation = 0
        self._pending: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[EntriesListener] = []

    # ── Read model ──

    @property
    def entries(self) -> list[ScheduleEntry]:
        return list(self._entries)

    @property
    def total(self) -> int:
        return len(self._entries)

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, record_id: Any) -> ScheduleEntry | None:
        return next((e for e in self._entries if e.id == record_id), None)

    def entry_at(
        self, day_of_week: int, slot_index: int, instructor_id: str | None = None
    ) -> ScheduleEntry | None:
        """First entry in a grid cell, optionally for one instructor."""
        time_slot = slot_index_to_time(slot_index)
        for entry in self._entries:
            if entry.day_of_week != day_of_week or entry.normalized_slot != time_slot:
                continue
            if instructor_id is None or entry.instructor_id == instructor_id:
                return entry
        return None

    def is_position_occupied(self, day_of_week: int, slot_index: int) -> bool:
        return self.entry_at(day_of_week, slot_index) is not None

    def entries_for_day(self, day_of_week: int) -> list[ScheduleEntry]:
        return [e for e in self._entries if e.day_of_week == day_of_week]

    def entries_for_instructor(self, instructor_id: str) -> list[ScheduleEntry]:
        return [e for e in self._entries if e.instructor_id == instructor_id]

    def add_listener(self, callback: EntriesListener) -> Callable[[], None]:
        """Call callback with the new list after every local mutation."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # ── Lifecycle ──

    async def start(self) -> list[ScheduleEntry]:
        bind_week_context(self.tenant, self.week.year, self.week.week_number)
        if self.listener is not None:
            self.listener.start()
        return await self.list()

    async def close(self) -> None:
        self._cancel_tasks()
        if self.listener is not None:
            self.listener.stop()
        clear_week_context()

    async def __aenter__(self) -> "ScheduleStore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def set_week(self, value: date | datetime | WeekBucket) -> list[ScheduleEntry]:
        """Display another week: resubscribe, drop local state and re-list.

        Operations still in flight for the previous week will not touch the
        new week's state.
        """
        bucket = value if isinstance(value, WeekBucket) else WeekBucket.for_date(value)
        if bucket == self.week:
            return self.entries

        previous = self.week
        self._generation += 1
        self._cancel_tasks()
        self._pending.clear()
        self.week = bucket
        bind_week_context(self.tenant, bucket.year, bucket.week_number)
        logger.info("week_changed", previous=str(previous), current=str(bucket))

        self._set_entries([], "week_changed")
        if self.listener is not None:
            self.listener.start()
        return await self.list()

    # ── Operations ──

    async def list(self) -> list[ScheduleEntry]:
        """Fetch the displayed week and replace the local list wholesale.

        Raises:
            FetchError: If the table (not the profile lookup) cannot be read.
            StaleWeekError: If the week changed while the read was in flight.
        """
        generation = self._generation
        week = self.week
        self.loading = True
        self.error = None
        try:
            rows = await self.table.select(
                {"year": week.year, "week_number": week.week_number},
                order=WEEK_ORDER,
            )
            profiles = await self._lookup_profiles(r.get("instructor_id") for r in rows)
        except RemoteError as e:
            self.ensure_current(generation, "list")
            self.error = e.message
            logger.error("schedule_fetch_failed", error=e.message, code=e.code)
            safe_notify(
                self.notifier,
                message("error_title", self.locale),
                message("fetch_failed", self.locale),
                "destructive",
            )
            raise FetchError(
                f"Fetching {week} failed: {e.message}",
                user_message=message("fetch_failed", self.locale),
            ) from e
        finally:
            if generation == self._generation:
                self.loading = False

        self.ensure_current(generation, "list")
        entries = []
        for row in rows:
            entry = ScheduleEntry.from_row(row)
            profile = profiles.get(entry.instructor_id) if entry.instructor_id else None
            if profile is not None:
                entry = entry.model_copy(update={"instructor_profile": profile})
            entries.append(entry)

        self._set_entries(entries, "list")
        logger.info("schedules_loaded", count=len(entries), profiles=len(profiles))
        return self.entries

    refresh = list

    async def create(self, data: ScheduleInput | Mapping[str, Any]) -> ScheduleEntry:
        """Book a course/instructor pair into a cell of the displayed week.

        Dropping onto a cell the instructor already occupies updates that
        entry instead of inserting a duplicate.

        Raises:
            MissingFieldError: day_of_week or time_slot_index absent; nothing
                was changed locally or remotely.
            InvalidInputError: A value is outside its accepted range.
            InvalidSlotError: The booking would run past the last slot.
            CheckConstraintViolation: The table rejected the day/time range.
            ConflictUnresolvedError: Uniqueness fired but no row was found.
            UniqueConstraintViolation: Conflict resolution itself failed.
            CreateError: Any other remote failure; the optimistic row is gone.
        """
        if not isinstance(data, ScheduleInput):
            data = self._validate_input(data)
        if data.day_of_week is None:
            raise MissingFieldError(
                "day_of_week",
                user_message=message("missing_field", self.locale, field="day_of_week"),
            )
        if data.time_slot_index is None:
            raise MissingFieldError(
                "time_slot_index",
                user_message=message("missing_field", self.locale, field="time_slot_index"),
            )

        time_slot, end_time = self._slot_range(data.time_slot_index, data.duration)
        patch = {
            "course_id": data.course_id,
            "duration": data.duration,
            "time_slot": time_slot,
            "start_time": time_slot,
            "end_time": end_time,
        }

        existing = self._find_cell(data.day_of_week, time_slot, data.instructor_id)
        if existing is not None:
            logger.info(
                "create_converted_to_update",
                record_id=existing.id,
                current_course=existing.course_id,
                new_course=data.course_id,
                time_slot=time_slot,
            )
            return await self.update(existing.id, patch)

        week = self.week
        generation = self._generation
        row = {
            "year": week.year,
            "week_number": week.week_number,
            "schedule_type": self.schedule_type,
            "day_of_week": data.day_of_week,
            "instructor_id": data.instructor_id,
            **patch,
        }
        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        optimistic = ScheduleEntry(
            id=temp_id,
            course=data.course_data,
            instructor_profile=self.profiles.get(data.instructor_id) if data.instructor_id else None,
            **row,
        )
        self._pending[temp_id] = generation
        self._set_entries([*self._entries, optimistic], "optimistic_create")

        try:
            created = await self.table.insert(row)
        except RemoteError as e:
            self._discard_pending(temp_id)
            self.ensure_current(generation, "create")
            if e.is_unique_violation:
                logger.info(
                    "create_unique_violation",
                    day_of_week=data.day_of_week,
                    time_slot=time_slot,
                    instructor_id=data.instructor_id,
                    details=e.details,
                )
                return await self.resolver.resolve(
                    ConflictAttempt(
                        generation=generation,
                        week=week,
                        day_of_week=data.day_of_week,
                        time_slot=time_slot,
                        instructor_id=data.instructor_id,
                        patch=patch,
                    )
                )
            if e.is_check_violation:
                raise CheckConstraintViolation(
                    e.message, user_message=message("invalid_range", self.locale)
                ) from e
            logger.error("schedule_create_failed", error=e.message, code=e.code)
            raise CreateError(
                e.message,
                user_message=message("create_failed", self.locale, detail=e.message),
            ) from e

        entry = self.with_profile(ScheduleEntry.from_row(created))
        if generation != self._generation:
            self._discard_pending(temp_id)
            self.ensure_current(generation, "create")

        self.recent.record(entry.id, "create")
        self._resolve_pending(temp_id, entry)
        logger.info("schedule_created", record_id=entry.id, temp_id=temp_id)
        self._toast("create_success_title", "create_success", entry)
        return entry

    async def update(
        self,
        record_id: Any,
        patch: Mapping[str, Any],
        *,
        notify: bool = True,
    ) -> ScheduleEntry:
        """Write patch remotely, then replace the local row with the server's.

        Raises:
            UniqueConstraintViolation: The target slot is already occupied.
            CheckConstraintViolation: The table rejected the day/time range.
            UpdateError: Any other remote failure; local state is unchanged.
        """
        if record_id is None:
            raise MissingFieldError(
                "id", user_message=message("missing_field", self.locale, field="id")
            )
        if isinstance(record_id, str) and record_id.startswith(TEMP_ID_PREFIX):
            raise UpdateError(
                f"Schedule {record_id} has not been saved yet",
                user_message=message("update_failed", self.locale, detail=record_id),
            )

        generation = self._generation
        try:
            row = await self.table.update(record_id, dict(patch))
        except RemoteError as e:
            self.ensure_current(generation, "update")
            logger.error(
                "schedule_update_failed", record_id=record_id, error=e.message, code=e.code
            )
            if e.is_unique_violation:
                raise UniqueConstraintViolation(
                    e.message, user_message=message("slot_occupied", self.locale)
                ) from e
            if e.is_check_violation:
                raise CheckConstraintViolation(
                    e.message, user_message=message("invalid_range", self.locale)
                ) from e
            raise UpdateError(
                e.message,
                user_message=message("update_failed", self.locale, detail=e.message),
            ) from e

        self.ensure_current(generation, "update")
        entry = self.with_profile(ScheduleEntry.from_row(row))
        previous = self.get(entry.id)
        if previous is not None:
            entry = entry.with_display_from(previous)

        self.recent.record(entry.id, "update")
        self.upsert_entry(entry, "update")
        logger.info("schedule_updated", record_id=entry.id, fields=sorted(patch))
        if notify:
            self._toast("update_success_title", "update_success", entry)
        return entry

    async def remove(self, record_id: Any) -> bool:
        """Delete remotely, confirm with a follow-up read, drop locally.

        A row still visible after the delete is logged, not raised: the read
        path may lag behind the write.
        """
        if record_id is None:
            raise MissingFieldError(
                "id", user_message=message("missing_field", self.locale, field="id")
            )
        if isinstance(record_id, str) and record_id.startswith(TEMP_ID_PREFIX):
            raise DeleteError(
                f"Schedule {record_id} has not been saved yet",
                user_message=message("delete_failed", self.locale, detail=record_id),
            )
        generation = self._generation
        entry = self.get(record_id)
        try:
            await self.table.delete(record_id)
        except RemoteError as e:
            self.ensure_current(generation, "remove")
            logger.error(
                "schedule_delete_failed", record_id=record_id, error=e.message, code=e.code
            )
            raise DeleteError(
                e.message,
                user_message=message("delete_failed", self.locale, detail=e.message),
            ) from e

        try:
            remaining = await self.table.select({"id": record_id}, columns="id")
            if remaining:
                logger.warning("delete_not_confirmed", record_id=record_id)
        except RemoteError as e:
            logger.warning("delete_verification_failed", record_id=record_id, error=e.message)

        self.ensure_current(generation, "remove")
        self.recent.record(record_id, "delete")
        self._set_entries([e for e in self._entries if e.id != record_id], "remove")
        logger.info("schedule_deleted", record_id=record_id)
        self._toast("delete_success_title", "delete_success", entry)
        return True

    async def move(
        self, record_id: Any, day_of_week: int, slot_index: int, duration: int = 1
    ) -> ScheduleEntry:
        time_slot, end_time = self._slot_range(slot_index, duration)
        return await self.update(
            record_id,
            {
                "day_of_week": day_of_week,
                "time_slot": time_slot,
                "start_time": time_slot,
                "end_time": end_time,
                "duration": duration,
            },
        )

    async def resize(self, record_id: Any, duration: int) -> ScheduleEntry:
        """Change how many slots an entry spans, keeping its start.

        Raises:
            ScheduleNotFoundError: No local entry has this id.
            InvalidSlotError: The stored start is not a canonical slot, or the
                new duration runs past the last slot.
        """
        entry = self.get(record_id)
        if entry is None:
            raise ScheduleNotFoundError(
                f"Schedule {record_id} not found",
                user_message=message("not_found", self.locale),
            )
        start = entry.start_time or entry.time_slot
        try:
            start_index = slot_index_of(start)
            end_time = end_time_for(start_index, duration)
        except InvalidSlotError as e:
            logger.error("resize_invalid_slot", record_id=record_id, start_time=start)
            e.user_message = message("invalid_slot", self.locale, value=start)
            raise
        return await self.update(record_id, {"duration": duration, "end_time": end_time})

    async def is_slot_available(
        self, instructor_id: str, day_of_week: int, slot_index: int
    ) -> bool:
        """Ask the table (not the local cache) whether the instructor is free."""
        week = self.week
        try:
            rows = await self.table.select(
                {
                    "year": week.year,
                    "week_number": week.week_number,
                    "day_of_week": day_of_week,
                    "instructor_id": instructor_id,
                },
                columns="id,time_slot",
            )
        except RemoteError as e:
            raise FetchError(
                e.message, user_message=message("fetch_failed", self.locale)
            ) from e
        time_slot = slot_index_to_time(slot_index)
        return not any(normalize_time(r.get("time_slot")) == time_slot for r in rows)

    # ── Helpers shared with the resolver and feed listener ──

    def ensure_current(self, generation: int, operation: str) -> None:
        """Raise StaleWeekError if the week changed since generation."""
        if generation != self._generation:
            logger.info(
                "stale_result_discarded",
                operation=operation,
                started_generation=generation,
                current_generation=self._generation,
            )
            raise StaleWeekError(
                f"{operation} finished after the displayed week changed",
                user_message=message("stale_week", self.locale),
            )

    def schedule_refresh(self, delay: float) -> asyncio.Task:
        """Re-list the week after delay, unless the week changes first."""

        async def _refresh() -> None:
            await asyncio.sleep(delay)
            try:
                await self.list()
            except ScheduleError as e:
                logger.warning("delayed_refresh_failed", error=str(e), code=e.code)

        task = asyncio.get_running_loop().create_task(_refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def upsert_entry(self, entry: ScheduleEntry, reason: str, *, append_missing: bool = True) -> None:
        if any(e.id == entry.id for e in self._entries):
            self._set_entries([entry if e.id == entry.id else e for e in self._entries], reason)
        elif append_missing:
            self._set_entries([*self._entries, entry], reason)

    def append_entry(self, entry: ScheduleEntry, reason: str) -> None:
        self._set_entries([*self._entries, entry], reason)

    def remove_entry(self, record_id: Any, reason: str) -> bool:
        remaining = [e for e in self._entries if e.id != record_id]
        if len(remaining) == len(self._entries):
            return False
        self._set_entries(remaining, reason)
        return True

    def with_profile(self, entry: ScheduleEntry) -> ScheduleEntry:
        if entry.instructor_profile is not None or not entry.instructor_id:
            return entry
        profile = self.profiles.get(entry.instructor_id)
        return entry.model_copy(update={"instructor_profile": profile}) if profile else entry

    # ── Internals ──

    def _set_entries(self, entries: list[ScheduleEntry], reason: str) -> None:
        self._entries = entries
        logger.debug("entries_changed", reason=reason, total=len(entries))
        for callback in list(self._listeners):
            try:
                callback(self.entries)
            except Exception as e:
                logger.warning("entries_listener_failed", error=str(e), type=type(e).__name__)

    def _validate_input(self, data: Mapping[str, Any]) -> ScheduleInput:
        try:
            return ScheduleInput.model_validate(dict(data))
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "input"
            logger.warning("create_input_invalid", field=field, error=first["msg"])
            raise InvalidInputError(
                f"Invalid {field}: {first['msg']}",
                field=field,
                user_message=message("invalid_input", self.locale, field=field),
            ) from e

    def _slot_range(self, slot_index: int, duration: int) -> tuple[str, str]:
        """(start, end) times of a booking, or InvalidSlotError with a localized message."""
        try:
            start = slot_index_to_time(slot_index)
        except InvalidSlotError as e:
            e.user_message = message("invalid_slot", self.locale, value=slot_index)
            raise
        try:
            return start, end_time_for(slot_index, duration)
        except InvalidSlotError as e:
            if duration < 1:
                e.user_message = message("invalid_input", self.locale, field="duration")
            else:
                e.user_message = message("slot_overflow", self.locale)
            raise

    def _find_cell(
        self, day_of_week: int, time_slot: str, instructor_id: str | None
    ) -> ScheduleEntry | None:
        return next(
            (
                e
                for e in self._entries
                if not e.is_temporary and e.occupies(day_of_week, time_slot, instructor_id)
            ),
            None,
        )

    def _resolve_pending(self, temp_id: str, entry: ScheduleEntry) -> None:
        """Swap the optimistic row for the server row, exactly once."""
        if self._pending.pop(temp_id, None) is None:
            return
        without_temp = [e for e in self._entries if e.id != temp_id]
        if any(e.id == entry.id for e in without_temp):
            # The change feed delivered the row before the insert response
            without_temp = [entry if e.id == entry.id else e for e in without_temp]
        else:
            without_temp.append(entry)
        self._set_entries(without_temp, "create_acknowledged")

    def _discard_pending(self, temp_id: str) -> None:
        if self._pending.pop(temp_id, None) is None:
            return
        self.remove_entry(temp_id, "create_rolled_back")

    async def _lookup_profiles(
        self, instructor_ids: Iterable[str | None]
    ) -> dict[str, InstructorProfile]:
        ids = [uid for uid in dict.fromkeys(instructor_ids) if uid]
        if not ids or self.directory is None:
            return {}
        hits, misses = self.profiles.get_many(ids)
        if misses:
            try:
                rows = await self.directory.instructor_profiles(misses)
            except RemoteError as e:
                # Display data only; the grid still renders without names
                logger.warning("profile_lookup_failed", error=e.message, missing=len(misses))
                return hits
            for user_id, row in rows.items():
                profile = InstructorProfile.model_validate(row)
                self.profiles.set(user_id, profile)
                hits[user_id] = profile
        return hits

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _toast(self, title_key: str, body_key: str, entry: ScheduleEntry | None) -> None:
        name = (entry.display_name if entry else None) or message(
            "default_entry_name", self.locale
        )
        safe_notify(
            self.notifier,
            message(title_key, self.locale),
            message(body_key, self.locale, name=name),
        )
