"""
Shared configuration and REST helpers for the timetable operator scripts.

Talks to the same PostgREST endpoint as the engine, synchronously, with the
service key from .env. The engine itself uses the async client in
src/timetable/postgrest.py.
"""

import os
import sys

import requests
from dotenv import load_dotenv

load_dotenv()

# Hosted project credentials (loaded from .env)
SUPABASE_URL = os.environ.get("TIMETABLE_SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.environ.get("TIMETABLE_SUPABASE_KEY", "")

REST_BASE = f"{SUPABASE_URL}/rest/v1"
SCHEDULES_TABLE = os.environ.get("TIMETABLE_SCHEDULES_TABLE", "weekly_schedules")

# Course columns joined into every schedule listing
SCHEDULE_SELECT = "*,teaching_courses(id,name,company_color,company,location,duration_hours)"

REQUEST_TIMEOUT = 30


def _headers(extra=None):
    headers = {
        "apikey": SUPABASE_KEY,
        "Authorization": f"Bearer {SUPABASE_KEY}",
        "Content-Type": "application/json",
    }
    if extra:
        headers.update(extra)
    return headers


def require_credentials():
    """Exit with a message if the REST endpoint is not configured."""
    if not SUPABASE_URL or not SUPABASE_KEY:
        print("TIMETABLE_SUPABASE_URL and TIMETABLE_SUPABASE_KEY must be set (see .env)")
        sys.exit(1)


def rest_get(table, params):
    """GET rows from a table. Returns a list, or {"error", "message"} on failure."""
    resp = requests.get(
        f"{REST_BASE}/{table}", headers=_headers(), params=params, timeout=REQUEST_TIMEOUT
    )
    if resp.status_code != 200:
        return {"error": resp.status_code, "message": resp.text}
    return resp.json()


def rest_post(table, rows):
    """Bulk insert rows, returning the created representation."""
    resp = requests.post(
        f"{REST_BASE}/{table}",
        headers=_headers({"Prefer": "return=representation"}),
        params={"select": "id"},
        json=rows,
        timeout=REQUEST_TIMEOUT,
    )
    return resp


def rest_delete(table, params):
    """Delete the rows matching params, returning the deleted ids."""
    resp = requests.delete(
        f"{REST_BASE}/{table}",
        headers=_headers({"Prefer": "return=representation"}),
        params={"select": "id", **params},
        timeout=REQUEST_TIMEOUT,
    )
    return resp


def week_params(bucket):
    """PostgREST filters selecting one week bucket.

    Matches ScheduleStore.list: year and week only, every schedule_type.
    """
    return {"year": f"eq.{bucket.year}", "week_number": f"eq.{bucket.week_number}"}


def fetch_week(bucket):
    """Fetch one week ordered like the grid, exiting on failure."""
    result = rest_get(
        SCHEDULES_TABLE,
        {"select": SCHEDULE_SELECT, "order": "day_of_week,time_slot", **week_params(bucket)},
    )
    if isinstance(result, dict) and "error" in result:
        print(f"Failed to fetch week {bucket}: {result['error']} {result['message'][:200]}")
        sys.exit(1)
    return result
