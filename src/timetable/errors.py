"""Error hierarchy for the schedule sync engine.

Two layers:

- RemoteError and TransientRemoteError are raised by the table adapters and
  carry the database error code. Tenacity retries TransientRemoteError on
  idempotent reads:

    @retry(retry=retry_if_exception_type(TransientRemoteError), stop=stop_after_attempt(3))
    async def select(...):
        ...

- ScheduleError subclasses are raised by the store to its callers. Each one
  carries an internal ``code`` and a localized ``user_message`` that the UI
  shows verbatim.
"""

# Postgres error codes surfaced by the REST layer
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"


class RemoteError(Exception):
    """Failure reported by the remote table or its transport."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status = status

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION

    @property
    def is_check_violation(self) -> bool:
        return self.code == CHECK_VIOLATION


class TransientRemoteError(RemoteError):
    """Temporary failure that may succeed on retry.

    Examples: connection reset, timeouts, 502/503/504 from the gateway.
    """


class ScheduleError(Exception):
    """Base exception for all store-level errors."""

    code = "schedule_error"

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class FetchError(ScheduleError):
    """Listing or reading the week failed. The caller offers a manual retry."""

    code = "fetch_failed"


class WriteError(ScheduleError):
    code = "write_failed"


class CreateError(WriteError):
    code = "create_failed"


class UpdateError(WriteError):
    code = "update_failed"


class DeleteError(WriteError):
    code = "delete_failed"


class UniqueConstraintViolation(CreateError, UpdateError):
    """The write collided with the (week, day, slot, instructor) uniqueness rule.

    On create this is resolved automatically; it only reaches the caller when
    resolution itself fails, or when an update moves onto an occupied slot.
    """

    code = "unique_violation"


class CheckConstraintViolation(CreateError, UpdateError):
    """Day or time outside the range accepted by the table."""

    code = "check_violation"


class ConflictUnresolvedError(CreateError):
    """Uniqueness fired but no conflicting row is visible. Reload and retry."""

    code = "conflict_unresolved"


class InvalidSlotError(ScheduleError):
    """A time value does not correspond to any canonical slot.

    Indicates corrupted data upstream; never coerced to a nearby slot.
    """

    code = "invalid_slot"


class InvalidInputError(ScheduleError, ValueError):
    """Create input outside the accepted ranges (day 0..6, slot 0..12, duration >= 1).

    Raised before any optimistic or remote change.
    """

    code = "invalid_input"

    def __init__(self, message: str, *, field: str | None = None, user_message: str | None = None) -> None:
        super().__init__(message, user_message=user_message)
        self.field = field


class MissingFieldError(ScheduleError, ValueError):
    """Required input is absent. Raised before any optimistic or remote change."""

    code = "missing_field"

    def __init__(self, field: str, *, user_message: str | None = None) -> None:
        super().__init__(f"{field} is required", user_message=user_message)
        self.field = field


class ScheduleNotFoundError(ScheduleError, LookupError):
    code = "not_found"


class StaleWeekError(ScheduleError):
    """The displayed week changed while the operation was in flight.

    The result was discarded and local state was left untouched.
    """

    code = "stale_week"
