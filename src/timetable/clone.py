"""Diff-based planning for copying one week's schedule onto another.

Compares the source week's rows against what the target week already holds
and produces only the inserts that will not collide with the uniqueness rule,
instead of blindly inserting everything and failing half-way.

Identity key: (instructor_id, day_of_week, normalized time_slot)
"""

from typing import Any, Iterable

from src.timetable.models import WRITABLE_COLUMNS
from src.timetable.slots import WeekBucket, normalize_time


def _key(row: dict[str, Any]) -> tuple:
    return (row.get("instructor_id"), row.get("day_of_week"), normalize_time(row.get("time_slot")))


def plan_week_clone(
    source_rows: Iterable[dict[str, Any]],
    target_rows: Iterable[dict[str, Any]],
    target: WeekBucket,
) -> dict:
    """Work out which source rows can be copied into the target week.

    Args:
        source_rows: Rows of the week being copied.
        target_rows: Rows already present in the target week.
        target: Bucket the copies are written into.

    Returns:
        {
            "added": [row_to_insert, ...],
            "skipped": [(source_row, occupying_target_row), ...],
            "unchanged_count": int,
        }
        A skipped row's cell is held by a different course in the target week;
        unchanged rows already exist there with the same course.
    """
    target_by_key: dict[tuple, dict[str, Any]] = {}
    for row in target_rows:
        target_by_key[_key(row)] = row

    added = []
    skipped = []
    unchanged = 0
    seen: set[tuple] = set()

    for row in source_rows:
        key = _key(row)
        if key in seen:
            continue
        seen.add(key)

        occupant = target_by_key.get(key)
        if occupant is None:
            copy = {col: row.get(col) for col in WRITABLE_COLUMNS}
            copy["year"] = target.year
            copy["week_number"] = target.week_number
            copy["time_slot"] = normalize_time(row.get("time_slot"))
            copy["start_time"] = normalize_time(row.get("start_time")) or copy["time_slot"]
            copy["end_time"] = normalize_time(row.get("end_time"))
            added.append(copy)
        elif occupant.get("course_id") == row.get("course_id"):
            unchanged += 1
        else:
            skipped.append((row, occupant))

    return {
        "added": added,
        "skipped": skipped,
        "unchanged_count": unchanged,
    }


def format_clone_summary(plan: dict, limit: int = 10) -> str:
    """Format a clone plan for human-readable display."""
    lines = [
        f"  Added: {len(plan['added'])}  |  "
        f"Skipped: {len(plan['skipped'])}  |  "
        f"Unchanged: {plan['unchanged_count']}"
    ]

    if plan["added"]:
        lines.append("  New:")
        for row in plan["added"][:limit]:
            lines.append(
                f"    + {row.get('instructor_id')}: day {row['day_of_week']} "
                f"{row['time_slot']}-{row.get('end_time')} course {row.get('course_id')}"
            )
        if len(plan["added"]) > limit:
            lines.append(f"    ... and {len(plan['added']) - limit} more")

    if plan["skipped"]:
        lines.append("  Occupied in target:")
        for row, occupant in plan["skipped"][:limit]:
            lines.append(
                f"    ! {row.get('instructor_id')}: day {row.get('day_of_week')} "
                f"{normalize_time(row.get('time_slot'))} course {row.get('course_id')} "
                f"(target has {occupant.get('course_id')})"
            )
        if len(plan["skipped"]) > limit:
            lines.append(f"    ... and {len(plan['skipped']) - limit} more")

    return "\n".join(lines)
