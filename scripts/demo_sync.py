"""Walk through the sync engine offline, on the in-memory backend.

Seeds one booking, then replays what the grid does when an editor drops
another course onto the same cell, when a second client writes to the same
week, and when the displayed week changes.

Run with: python scripts/demo_sync.py
JSON logs: python scripts/demo_sync.py --json
"""

import argparse
import asyncio
import os
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.timetable.config import TimetableConfig  # noqa: E402
from src.timetable.logging import setup_logging  # noqa: E402
from src.timetable.memory import MemoryBackend  # noqa: E402
from src.timetable.notify import RecordingNotifier  # noqa: E402
from src.timetable.slots import DAYS, WeekBucket  # noqa: E402
from src.timetable.store import ScheduleStore  # noqa: E402

COURSES = {
    1: {"id": 1, "name": "Python Basics", "company_color": "#2563eb", "company": "login"},
    2: {"id": 2, "name": "Data Analysis", "company_color": "#16a34a", "company": "login"},
    3: {"id": 3, "name": "Excel", "company_color": "#f59e0b", "company": "login"},
}
PROFILES = {
    "I1": {"user_id": "I1", "full_name": "Somchai P.", "email": "somchai@example.com"},
    "I2": {"user_id": "I2", "full_name": "Suda K.", "email": "suda@example.com"},
}


def _print_grid(store):
    print(f"  week {store.week}: {store.total} entries")
    for entry in store.entries:
        who = entry.instructor_profile.full_name if entry.instructor_profile else entry.instructor_id
        print(
            f"    [{entry.id}] {DAYS[entry.day_of_week].name_en} "
            f"{entry.start_time}-{entry.end_time} {entry.display_name} ({who})"
        )


def _print_toasts(notifier):
    for toast in notifier.toasts:
        print(f"  toast [{toast.variant}] {toast.title}: {toast.description}")
    notifier.clear()


async def run_demo():
    config = TimetableConfig(conflict_refresh_delay_seconds=0.2, locale="en")
    backend = MemoryBackend(courses=COURSES, profiles=PROFILES)
    week = WeekBucket.for_date(date.today())
    backend.seed(
        {
            "year": week.year,
            "week_number": week.week_number,
            "schedule_type": config.schedule_type,
            "day_of_week": 2,
            "time_slot": "08:00",
            "start_time": "08:00",
            "end_time": "09:00",
            "duration": 1,
            "course_id": 1,
            "instructor_id": "I1",
        }
    )
    notifier = RecordingNotifier()

    async with ScheduleStore(
        backend,
        directory=backend,
        feed=backend,
        notifier=notifier,
        week=week,
        config=config,
    ) as store:
        print("1. Initial load")
        _print_grid(store)

        print("\n2. Drop 'Data Analysis' for I1 onto Tuesday 08:00 (occupied)")
        await store.create({"day_of_week": 2, "time_slot_index": 0, "course_id": 2, "instructor_id": "I1"})
        _print_grid(store)
        _print_toasts(notifier)

        print("\n3. Book I2 on Tuesday 10:00 for two hours")
        created = await store.create(
            {"day_of_week": 2, "time_slot_index": 2, "duration": 2, "course_id": 3, "instructor_id": "I2"}
        )
        await asyncio.sleep(0)
        _print_grid(store)
        _print_toasts(notifier)

        print("\n4. Another client moves the I2 booking to Wednesday")
        row = dict(backend.rows[created.id])
        backend.rows[created.id] = {**row, "day_of_week": 3}
        store.recent.acknowledge(created.id)
        backend.emit("UPDATE", new=backend.rows[created.id], old=row)
        await asyncio.sleep(0)
        _print_grid(store)

        print("\n5. Delete the I1 booking")
        first = store.entries[0]
        await store.remove(first.id)
        await asyncio.sleep(0)
        _print_grid(store)
        _print_toasts(notifier)

        print("\n6. Switch to next week")
        await store.set_week(week.shifted(1))
        _print_grid(store)
        print(f"  subscribed channel: {store.listener.channel}")


def main():
    parser = argparse.ArgumentParser(description="Offline demo of the schedule sync engine")
    parser.add_argument("--json", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(json_output=args.json, log_level=args.log_level)
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
