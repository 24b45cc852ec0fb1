"""Tests for turning a uniqueness collision on create into an update."""

import asyncio

import pytest

from conftest import make_row
from src.timetable.errors import ConflictUnresolvedError, RemoteError, UniqueConstraintViolation


def duplicate_key():
    return RemoteError(
        'duplicate key value violates unique constraint "weekly_schedules_unique_instructor_slot"',
        code="23505",
    )


def drop(course_id=2, day=2, slot_index=0, instructor_id="I1"):
    return {
        "day_of_week": day,
        "time_slot_index": slot_index,
        "course_id": course_id,
        "instructor_id": instructor_id,
    }


class TestConflictResolver:
    @pytest.mark.asyncio
    async def test_stale_cache_drop_replaces_existing_booking(self, store, backend, notifier):
        # The grid loaded before the other booking existed
        await store.start()
        seeded = backend.seed(make_row(course_id=1))

        entry = await store.create(drop(course_id=2))

        assert entry.id == seeded["id"]
        assert entry.course_id == 2
        assert [(e.id, e.course_id) for e in store.entries] == [(seeded["id"], 2)]
        assert len(backend.rows) == 1
        assert backend.rows[seeded["id"]]["course_id"] == 2
        assert notifier.toasts[-1].title == "Schedule replaced"
        assert notifier.toasts[-1].description == "Replaced the Python Basics booking in this slot"

    @pytest.mark.asyncio
    async def test_delayed_refresh_runs(self, store, backend):
        await store.start()
        backend.seed(make_row(course_id=1))
        backend.seed(make_row(day=5, course_id=3))
        selects = backend.calls["select"]

        await store.create(drop(course_id=2))
        await asyncio.sleep(0.05)

        # conflict lookup + delayed re-list
        assert backend.calls["select"] == selects + 2
        assert store.total == 2

    @pytest.mark.asyncio
    async def test_exact_match_compares_normalized_slots(self, store, backend):
        await store.start()
        backend.seed(make_row(slot="09:00"))
        unpadded = backend.seed(make_row(slot="8:00"))
        backend.fail_next("insert", duplicate_key())

        entry = await store.create(drop(slot_index=0))

        assert entry.id == unpadded["id"]
        assert entry.time_slot == "08:00"

    @pytest.mark.asyncio
    async def test_falls_back_to_first_row(self, store, backend):
        await store.start()
        first = backend.seed(make_row(slot="11:00"))
        backend.seed(make_row(slot="14:00"))
        backend.fail_next("insert", duplicate_key())

        entry = await store.create(drop(slot_index=0))

        assert entry.id == first["id"]
        assert entry.time_slot == "08:00"
        assert entry.course_id == 2

    @pytest.mark.asyncio
    async def test_no_candidate_relists_and_asks_to_reload(self, store, backend):
        await store.start()
        backend.fail_next("insert", duplicate_key())
        selects = backend.calls["select"]

        with pytest.raises(ConflictUnresolvedError) as exc:
            await store.create(drop())

        assert exc.value.user_message == "This slot has a conflict, please reload and try again"
        assert store.entries == []
        assert backend.calls["select"] == selects + 2

    @pytest.mark.asyncio
    async def test_lookup_failure(self, store, backend):
        await store.start()
        backend.fail_next("insert", duplicate_key())
        backend.fail_next("select", RemoteError("connection reset"))

        with pytest.raises(UniqueConstraintViolation) as exc:
            await store.create(drop())

        assert "already booked" in exc.value.user_message
        assert store.entries == []

    @pytest.mark.asyncio
    async def test_update_failure(self, store, backend):
        await store.start()
        seeded = backend.seed(make_row(course_id=1))
        backend.fail_next("update", RemoteError("row locked"))

        with pytest.raises(UniqueConstraintViolation):
            await store.create(drop(course_id=2))

        assert backend.rows[seeded["id"]]["course_id"] == 1
        assert store.entries == []
