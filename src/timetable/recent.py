"""Tracking of rows this client wrote recently.

The change feed echoes every write back to the client that made it. Echoes of
our own writes are suppressed for a short window so a stale server payload
does not overwrite fresher optimistic state. Expiry is evaluated against a
monotonic clock when queried; no timers are scheduled.
"""

import time
from typing import Any, Literal

from src.timetable.cache import Clock
from src.timetable.logging import get_logger

logger = get_logger(__name__)

WriteKind = Literal["create", "update", "delete"]


class RecentWrites:
    """Ids written by this client, each remembered for a per-kind window."""

    def __init__(
        self,
        *,
        write_window: float = 3.0,
        delete_window: float = 5.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._windows: dict[str, float] = {
            "create": write_window,
            "update": write_window,
            "delete": delete_window,
        }
        self._clock = clock
        self._expiry: dict[Any, float] = {}

    def record(self, record_id: Any, kind: WriteKind) -> None:
        self.purge()
        expires_at = self._clock() + self._windows[kind]
        # A later write never shortens an existing window
        self._expiry[record_id] = max(expires_at, self._expiry.get(record_id, 0.0))
        logger.debug("recent_write_recorded", record_id=record_id, kind=kind)

    def is_recent(self, record_id: Any) -> bool:
        expires_at = self._expiry.get(record_id)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._expiry[record_id]
            return False
        return True

    def acknowledge(self, record_id: Any) -> None:
        """Forget an id before its window ends."""
        self._expiry.pop(record_id, None)

    def purge(self) -> int:
        now = self._clock()
        expired = [rid for rid, expires_at in self._expiry.items() if expires_at <= now]
        for rid in expired:
            del self._expiry[rid]
        return len(expired)

    def clear(self) -> None:
        self._expiry.clear()

    def __len__(self) -> int:
        self.purge()
        return len(self._expiry)
