"""
Inspect, copy and clear whole weeks of the teaching schedule.

Talks to the hosted weekly_schedules table directly (service key from .env).
Copying is diff-based: cells the target week already holds for the same
instructor are skipped instead of tripping the uniqueness rule half-way.

Usage:
    python scripts/week_tools.py show --week 2026-10-19
    python scripts/week_tools.py clone --from 2026-10-12 --to 2026-10-19             # dry-run (default)
    python scripts/week_tools.py clone --from 2026-10-12 --to 2026-10-19 --execute
    python scripts/week_tools.py clear --week 2026-10-19 --execute

Dates may be any day of the week; they are bucketed to the ISO week.
"""

import argparse
import io
import json
import sys
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path

# Fix Windows console encoding for Thai day names
if sys.platform == "win32":
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding="utf-8", errors="replace")

sys.path.insert(0, str(Path(__file__).resolve().parent))
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from config import (  # noqa: E402
    SCHEDULES_TABLE,
    fetch_week,
    require_credentials,
    rest_delete,
    rest_post,
    week_params,
)

from src.timetable.clone import format_clone_summary, plan_week_clone  # noqa: E402
from src.timetable.slots import DAYS, WeekBucket, normalize_time  # noqa: E402

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
REPORTS_DIR = PROJECT_ROOT / "reports"

# Rows per bulk insert request
INSERT_BATCH = 100


def _parse_week(value):
    try:
        return WeekBucket.for_date(date.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value}")


def _save_report(report, prefix):
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    ts = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    report_path = REPORTS_DIR / f"{prefix}_{ts}.json"
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False, default=str)
    return report_path


def _report(mode, **extra):
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "mode": mode,
        **extra,
    }


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------
def format_week(rows):
    """Group a week's rows by day, one line per booking."""
    by_day = defaultdict(list)
    for row in rows:
        by_day[row.get("day_of_week")].append(row)

    lines = []
    for day in DAYS:
        day_rows = sorted(by_day.get(day.index, []), key=lambda r: normalize_time(r.get("time_slot")) or "")
        if not day_rows:
            continue
        lines.append(f"{day.name_en} ({day.name})")
        for row in day_rows:
            course = row.get("teaching_courses") or {}
            lines.append(
                f"  {normalize_time(row.get('start_time') or row.get('time_slot'))}-"
                f"{normalize_time(row.get('end_time'))}  "
                f"{course.get('name') or row.get('course_id')}  "
                f"[{row.get('instructor_id')}]"
            )
    return "\n".join(lines) if lines else "  (empty)"


def cmd_show(args):
    rows = fetch_week(args.week)
    print(f"Week {args.week} ({args.week.start} .. {args.week.end}): {len(rows)} entries\n")
    print(format_week(rows))


# ---------------------------------------------------------------------------
# clone
# ---------------------------------------------------------------------------
def cmd_clone(args):
    source, target = args.source, args.target
    if source == target:
        print("Source and target are the same week, nothing to do")
        sys.exit(1)

    mode = "execute" if args.execute else "dry-run"
    print("=" * 60)
    print(f"WEEK CLONE {source} -> {target} [{mode.upper()}]")
    print("=" * 60)

    source_rows = fetch_week(source)
    target_rows = fetch_week(target)
    print(f"Source: {len(source_rows)} entries  |  Target: {len(target_rows)} entries\n")

    plan = plan_week_clone(source_rows, target_rows, target)
    print(format_clone_summary(plan))

    if not args.execute:
        print("\n--- DRY RUN -- no writes ---")
        print("Run with --execute to insert the new entries.")
        return

    created, failed, errors = 0, 0, []
    added = plan["added"]
    for i in range(0, len(added), INSERT_BATCH):
        batch = added[i:i + INSERT_BATCH]
        resp = rest_post(SCHEDULES_TABLE, batch)
        if resp.status_code in (200, 201):
            created += len(batch)
        else:
            failed += len(batch)
            errors.append(f"batch {i // INSERT_BATCH}: {resp.status_code} {resp.text[:200]}")
            print(f"  FAILED batch {i // INSERT_BATCH}: {resp.status_code}")

    report = _report(
        mode,
        source=str(source),
        target=str(target),
        summary={
            "created": created,
            "failed": failed,
            "skipped": len(plan["skipped"]),
            "unchanged": plan["unchanged_count"],
        },
        skipped=[
            {"source": row, "target_course_id": occupant.get("course_id")}
            for row, occupant in plan["skipped"]
        ],
        errors=errors,
    )
    report_path = _save_report(report, "week_clone")
    print(f"\nCreated: {created}  |  Failed: {failed}")
    print(f"Report: {report_path}")


# ---------------------------------------------------------------------------
# clear
# ---------------------------------------------------------------------------
def cmd_clear(args):
    mode = "execute" if args.execute else "dry-run"
    print("=" * 60)
    print(f"WEEK CLEAR {args.week} [{mode.upper()}]")
    print("=" * 60)

    rows = fetch_week(args.week)
    print(f"{len(rows)} entries in {args.week}\n")
    print(format_week(rows))

    if not args.execute:
        print("\n--- DRY RUN -- no writes ---")
        print("Run with --execute to delete every entry of this week.")
        return

    resp = rest_delete(SCHEDULES_TABLE, week_params(args.week))
    if resp.status_code not in (200, 204):
        print(f"\nFAILED: {resp.status_code} {resp.text[:200]}")
        sys.exit(1)
    deleted = resp.json() if resp.content else []

    report = _report(
        mode,
        week=str(args.week),
        summary={"deleted": len(deleted), "listed": len(rows)},
        deleted_ids=[r.get("id") for r in deleted],
    )
    report_path = _save_report(report, "week_clear")
    print(f"\nDeleted: {len(deleted)}")
    print(f"Report: {report_path}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser(description="Inspect, copy and clear schedule weeks")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print one week grouped by day")
    show.add_argument("--week", type=_parse_week, default=WeekBucket.for_date(date.today()))
    show.set_defaults(func=cmd_show)

    clone = sub.add_parser("clone", help="Copy one week onto another, skipping occupied cells")
    clone.add_argument("--from", dest="source", type=_parse_week, required=True)
    clone.add_argument("--to", dest="target", type=_parse_week, required=True)
    clone.add_argument("--execute", action="store_true", help="Insert the planned entries")
    clone.set_defaults(func=cmd_clone)

    clear = sub.add_parser("clear", help="Delete every entry of one week")
    clear.add_argument("--week", type=_parse_week, required=True)
    clear.add_argument("--execute", action="store_true", help="Actually delete")
    clear.set_defaults(func=cmd_clear)

    args = parser.parse_args()
    require_credentials()
    args.func(args)


if __name__ == "__main__":
    main()
