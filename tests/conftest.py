"""Shared fixtures: a fixed week, an in-memory backend and a store wired to it."""

from datetime import date

import pytest
import pytest_asyncio

from src.timetable.config import TimetableConfig
from src.timetable.memory import MemoryBackend
from src.timetable.notify import RecordingNotifier
from src.timetable.slots import WeekBucket, end_time_for, slot_index_of
from src.timetable.store import ScheduleStore

# Monday 2026-10-19, ISO week 43
WEEK = WeekBucket.for_date(date(2026, 10, 19))
NEXT_WEEK = WEEK.shifted(1)

COURSES = {
    1: {"id": 1, "name": "Python Basics", "company_color": "#2563eb", "company": "login"},
    2: {"id": 2, "name": "Data Analysis", "company_color": "#16a34a", "company": "login"},
    3: {"id": 3, "name": "Excel", "company_color": "#f59e0b", "company": "login"},
}
PROFILES = {
    "I1": {"user_id": "I1", "full_name": "Somchai P.", "email": "somchai@example.com"},
    "I2": {"user_id": "I2", "full_name": "Suda K.", "email": "suda@example.com"},
}


def make_row(
    day=2,
    slot="08:00",
    course_id=1,
    instructor_id="I1",
    duration=1,
    week=WEEK,
    **extra,
):
    """A bare weekly_schedules row as the table stores it."""
    end_time = extra.pop("end_time", None) or end_time_for(slot_index_of(slot), duration)
    return {
        "year": week.year,
        "week_number": week.week_number,
        "schedule_type": "weekends",
        "day_of_week": day,
        "time_slot": slot,
        "start_time": slot,
        "end_time": end_time,
        "duration": duration,
        "course_id": course_id,
        "instructor_id": instructor_id,
        **extra,
    }


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return TimetableConfig(
        supabase_url="https://example.supabase.co",
        supabase_key="test-key",
        conflict_refresh_delay_seconds=0.01,
        locale="en",
    )


@pytest.fixture
def backend():
    return MemoryBackend(courses=COURSES, profiles=PROFILES)


@pytest.fixture
def notifier():
    return RecordingNotifier()


def build_store(backend, notifier, config, clock, week=WEEK):
    return ScheduleStore(
        backend,
        directory=backend,
        feed=backend,
        notifier=notifier,
        week=week,
        config=config,
        clock=clock,
    )


@pytest_asyncio.fixture
async def store(backend, notifier, config, clock):
    """A store on WEEK that has not been started yet."""
    store = build_store(backend, notifier, config, clock)
    yield store
    await store.close()
