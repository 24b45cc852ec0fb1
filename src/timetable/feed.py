"""Applies change-feed events for the displayed week to the store.

The feed is not filtered server-side, so every event is checked against the
store's current (year, week_number) here. Inserts and updates of rows this
client wrote within the echo window are skipped: the store already holds the
server's response for them. Deletes are always applied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping

from pydantic import ValidationError

from src.timetable.logging import get_logger
from src.timetable.models import ChangeEvent, ScheduleEntry
from src.timetable.remote import SUBSCRIBED, Subscription

if TYPE_CHECKING:
    from src.timetable.store import ScheduleStore

logger = get_logger(__name__)


class ChangeFeedListener:
    def __init__(self, store: ScheduleStore) -> None:
        self.store = store
        self.channel: str | None = None
        self._subscription: Subscription | None = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """(Re)subscribe on the channel of the store's current week."""
        self.stop()
        store = self.store
        if store.feed is None:
            return
        self.channel = store.week.channel_name(store.tenant)
        self._subscription = store.feed.subscribe(
            self.channel, self.handle, on_status=self._on_status
        )
        logger.info("change_feed_subscribed", channel=self.channel)

    def stop(self) -> None:
        if self._subscription is None:
            return
        subscription, self._subscription = self._subscription, None
        subscription.unsubscribe()
        self.store.connected = False
        logger.info("change_feed_unsubscribed", channel=self.channel)

    def _on_status(self, status: str) -> None:
        self.store.connected = status == SUBSCRIBED
        logger.debug("change_feed_status", channel=self.channel, status=status)

    def handle(self, event: ChangeEvent | Mapping[str, Any]) -> None:
        """Entry point for the feed: filter by week, then apply."""
        if not isinstance(event, ChangeEvent):
            try:
                event = ChangeEvent.model_validate(event)
            except ValidationError as e:
                logger.warning("change_event_malformed", error=str(e))
                return

        record_id = event.record_id
        if record_id is None:
            logger.warning("change_event_without_id", event_type=event.event_type)
            return

        if event.event_type == "DELETE":
            self._apply_delete(event, record_id)
        elif event.event_type == "INSERT":
            self._apply_insert(event, record_id)
        else:
            self._apply_update(event, record_id)

    def _in_week(self, record: Mapping[str, Any]) -> bool:
        return self.store.week.contains(record.get("year"), record.get("week_number"))

    def _entry(self, record: Mapping[str, Any]) -> ScheduleEntry | None:
        try:
            return self.store.with_profile(ScheduleEntry.from_row(dict(record)))
        except ValidationError as e:
            logger.warning("change_event_invalid_row", record_id=record.get("id"), error=str(e))
            return None

    def _apply_insert(self, event: ChangeEvent, record_id: Any) -> None:
        store = self.store
        if not self._in_week(event.record):
            logger.debug("change_event_other_week", event_type="INSERT", record_id=record_id)
            return
        if store.recent.is_recent(record_id):
            logger.debug("change_event_echo_skipped", event_type="INSERT", record_id=record_id)
            return
        if store.get(record_id) is not None:
            logger.debug("change_event_duplicate", event_type="INSERT", record_id=record_id)
            return
        entry = self._entry(event.record)
        if entry is not None:
            store.append_entry(entry, "remote_insert")
            logger.info("remote_insert_applied", record_id=record_id)

    def _apply_update(self, event: ChangeEvent, record_id: Any) -> None:
        store = self.store
        record = event.new or {}
        local = store.get(record_id)

        if not self._in_week(record):
            # Moved out of the displayed week by another client
            if local is not None and store.remove_entry(record_id, "remote_moved_out"):
                logger.info("remote_update_moved_out", record_id=record_id)
            return
        if store.recent.is_recent(record_id):
            logger.debug("change_event_echo_skipped", event_type="UPDATE", record_id=record_id)
            return

        entry = self._entry(record)
        if entry is None:
            return
        if local is not None:
            entry = entry.with_display_from(local)
        store.upsert_entry(entry, "remote_update")
        logger.info("remote_update_applied", record_id=record_id)

    def _apply_delete(self, event: ChangeEvent, record_id: Any) -> None:
        record = event.old or {}
        # Primary-key-only payloads carry no week; the id check decides
        if record.get("year") is not None and not self._in_week(record):
            logger.debug("change_event_other_week", event_type="DELETE", record_id=record_id)
            return
        if self.store.remove_entry(record_id, "remote_delete"):
            logger.info("remote_delete_applied", record_id=record_id)
