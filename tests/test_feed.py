"""Tests for applying change-feed events to the displayed week."""

import asyncio

import pytest

from conftest import COURSES, NEXT_WEEK, PROFILES, build_store, make_row
from src.timetable.memory import MemoryBackend
from src.timetable.models import ChangeEvent


async def settle():
    """Let call_soon-scheduled feed deliveries run."""
    await asyncio.sleep(0)


class TestSubscription:
    @pytest.mark.asyncio
    async def test_connected_while_subscribed(self, store, backend):
        await store.start()
        assert store.connected is True
        assert store.listener.active
        assert store.listener.channel == "schedules-login-2026-10-19"

        await store.close()

        assert store.connected is False
        assert backend.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_store_without_feed(self, backend, notifier, config, clock):
        store = build_store(backend, notifier, config, clock)
        store.feed = None
        store.listener.start()
        assert not store.listener.active
        assert backend.subscriber_count == 0


class TestInsertEvents:
    @pytest.mark.asyncio
    async def test_other_client_insert_is_appended(self, store, backend):
        await store.start()
        backend.seed(make_row(instructor_id="I2"), notify=True)
        await settle()
        assert store.total == 1
        assert store.entries[0].instructor_id == "I2"

    @pytest.mark.asyncio
    async def test_other_week_is_ignored(self, store, backend):
        await store.start()
        backend.seed(make_row(week=NEXT_WEEK), notify=True)
        await settle()
        assert store.total == 0

    @pytest.mark.asyncio
    async def test_known_id_is_not_duplicated(self, store, backend):
        seeded = backend.seed(make_row())
        await store.start()
        backend.emit("INSERT", new={k: v for k, v in seeded.items() if k != "teaching_courses"})
        await settle()
        assert store.total == 1


class TestUpdateEvents:
    @pytest.mark.asyncio
    async def test_own_echo_is_suppressed_within_window(self, store, backend, clock):
        await store.start()
        entry = await store.create({"day_of_week": 2, "time_slot_index": 0, "course_id": 2, "instructor_id": "I1"})
        stale = {**backend.rows[entry.id], "course_id": 1}

        backend.emit("UPDATE", new=stale)
        await settle()
        assert store.get(entry.id).course_id == 2

        clock.advance(3.0)
        backend.emit("UPDATE", new=stale)
        await settle()
        assert store.get(entry.id).course_id == 1

    @pytest.mark.asyncio
    async def test_bare_payload_keeps_display_data(self, store, backend):
        seeded = backend.seed(make_row())
        await store.start()

        backend.emit("UPDATE", new={**backend.rows[seeded["id"]], "duration": 2, "end_time": "10:00"})
        await settle()

        entry = store.get(seeded["id"])
        assert entry.duration == 2
        assert entry.display_name == "Python Basics"
        assert entry.instructor_profile.full_name == "Somchai P."

    @pytest.mark.asyncio
    async def test_moved_to_another_week_is_removed(self, store, backend):
        seeded = backend.seed(make_row())
        await store.start()

        backend.emit(
            "UPDATE",
            new={**backend.rows[seeded["id"]], "week_number": NEXT_WEEK.week_number},
        )
        await settle()
        assert store.total == 0

    @pytest.mark.asyncio
    async def test_unknown_row_in_week_is_added(self, store, backend):
        await store.start()
        backend.emit("UPDATE", new={**make_row(day=6), "id": 77})
        await settle()
        assert store.get(77).day_of_week == 6


class TestDeleteEvents:
    @pytest.mark.asyncio
    async def test_primary_key_only_delete(self, store, backend):
        seeded = backend.seed(make_row())
        await store.start()
        backend.emit("DELETE", old={"id": seeded["id"]})
        await settle()
        assert store.total == 0

    @pytest.mark.asyncio
    async def test_delete_is_never_suppressed(self, store, backend):
        await store.start()
        entry = await store.create({"day_of_week": 2, "time_slot_index": 0, "course_id": 2, "instructor_id": "I1"})
        assert store.recent.is_recent(entry.id)

        backend.emit("DELETE", old={"id": entry.id})
        await settle()
        assert store.get(entry.id) is None

    @pytest.mark.asyncio
    async def test_full_row_delete_of_other_week_is_ignored(self, store, backend):
        seeded = backend.seed(make_row())
        await store.start()
        backend.emit("DELETE", old={"id": seeded["id"], "year": NEXT_WEEK.year, "week_number": NEXT_WEEK.week_number})
        await settle()
        assert store.total == 1

    @pytest.mark.asyncio
    async def test_remote_delete_with_full_replica_identity(self, notifier, config, clock):
        backend = MemoryBackend(courses=COURSES, profiles=PROFILES, full_replica_identity=True)
        seeded = backend.seed(make_row())
        other = build_store(backend, notifier, config, clock)
        store = build_store(backend, notifier, config, clock)
        await store.start()
        await other.start()
        try:
            await other.remove(seeded["id"])
            await settle()
            assert store.total == 0
        finally:
            await store.close()
            await other.close()


class TestMalformedEvents:
    @pytest.mark.asyncio
    async def test_unknown_event_type_is_dropped(self, store):
        await store.start()
        store.listener.handle({"eventType": "TRUNCATE", "new": {"id": 1}})
        assert store.total == 0

    @pytest.mark.asyncio
    async def test_event_without_id_is_dropped(self, store):
        await store.start()
        store.listener.handle(ChangeEvent(event_type="INSERT", new={"year": 2026}))
        assert store.total == 0

    @pytest.mark.asyncio
    async def test_invalid_row_is_dropped(self, store):
        await store.start()
        store.listener.handle({"eventType": "INSERT", "new": {**make_row(day=9), "id": 5}})
        assert store.total == 0
