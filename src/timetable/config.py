"""Engine configuration loaded from environment variables.

Connection settings for the hosted schedule table plus the timing windows used
by the optimistic store and change-feed listener.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Engine settings, read from TIMETABLE_* variables or a local .env file."""

    # Hosted database (PostgREST endpoint in front of Postgres)
    supabase_url: str = Field(
        default="",
        description="Base URL of the hosted project, e.g. https://xyz.supabase.co",
    )
    supabase_key: str = Field(
        default="",
        description="API key sent as apikey and bearer token",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for a single REST call",
    )
    read_retry_attempts: int = Field(
        default=3,
        description="Attempts for idempotent reads on transient failures",
    )

    # Tables
    schedules_table: str = Field(default="weekly_schedules")
    courses_table: str = Field(default="teaching_courses")
    profiles_table: str = Field(default="user_profiles")

    # Scope
    tenant: str = Field(
        default="login",
        description="Tenant (company) whose schedule grid is displayed",
    )
    schedule_type: str = Field(
        default="weekends",
        description="schedule_type column value written on create",
    )

    # Reconciliation windows
    create_echo_window_seconds: float = Field(
        default=3.0,
        description="How long a local create/update suppresses its change-feed echo",
    )
    delete_echo_window_seconds: float = Field(
        default=5.0,
        description="How long a local delete is remembered as a recent write",
    )
    conflict_refresh_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the full re-fetch that follows conflict resolution",
    )
    profile_cache_ttl_seconds: float = Field(
        default=300.0,
        description="TTL of the instructor profile cache",
    )

    # User-facing messages
    locale: str = Field(
        default="th",
        description="Locale for toast and error messages (th, en)",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum log level name",
    )

    model_config = {
        "env_prefix": "TIMETABLE_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Process-wide instance, created on first use
_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Return the shared TimetableConfig, loading it on the first call."""
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config
