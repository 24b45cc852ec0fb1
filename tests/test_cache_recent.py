"""Tests for the TTL cache, recent-write tracking and the toast sink."""

import pytest

from src.timetable.cache import TTLCache
from src.timetable.notify import RecordingNotifier, Toast, safe_notify
from src.timetable.recent import RecentWrites


class TestTTLCache:
    def test_hit_then_expiry(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("I1", "Somchai")
        assert cache.get("I1") == "Somchai"
        assert "I1" in cache
        clock.advance(10)
        assert cache.get("I1") is None
        assert "I1" not in cache

    def test_get_many_splits_hits_and_misses(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("I1", "a")
        hits, misses = cache.get_many(["I1", "I2"])
        assert hits == {"I1": "a"}
        assert misses == ["I2"]

    def test_purge_and_len(self, clock):
        cache = TTLCache(5, clock=clock)
        cache.set("a", 1)
        clock.advance(3)
        cache.set("b", 2)
        clock.advance(3)
        assert cache.purge() == 1
        assert len(cache) == 1

    def test_discard_and_clear(self, clock):
        cache = TTLCache(5, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.discard("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(0)


class TestRecentWrites:
    def test_create_window(self, clock):
        recent = RecentWrites(write_window=3.0, delete_window=5.0, clock=clock)
        recent.record(1, "create")
        clock.advance(2.5)
        assert recent.is_recent(1)
        clock.advance(0.5)
        assert not recent.is_recent(1)

    def test_delete_window_is_longer(self, clock):
        recent = RecentWrites(write_window=3.0, delete_window=5.0, clock=clock)
        recent.record(1, "delete")
        clock.advance(4)
        assert recent.is_recent(1)
        clock.advance(1)
        assert not recent.is_recent(1)

    def test_later_write_never_shortens_window(self, clock):
        recent = RecentWrites(write_window=3.0, delete_window=5.0, clock=clock)
        recent.record(1, "delete")
        clock.advance(1)
        recent.record(1, "update")
        clock.advance(3.5)
        assert recent.is_recent(1)

    def test_unknown_id(self, clock):
        assert not RecentWrites(clock=clock).is_recent(42)

    def test_acknowledge(self, clock):
        recent = RecentWrites(clock=clock)
        recent.record(1, "update")
        recent.acknowledge(1)
        assert not recent.is_recent(1)

    def test_purge(self, clock):
        recent = RecentWrites(write_window=3.0, delete_window=5.0, clock=clock)
        recent.record(1, "create")
        recent.record(2, "delete")
        clock.advance(4)
        assert recent.purge() == 1
        assert len(recent) == 1

    def test_record_drops_expired_ids(self, clock):
        recent = RecentWrites(write_window=3.0, delete_window=5.0, clock=clock)
        for record_id in range(50):
            recent.record(record_id, "create")
        clock.advance(4)
        recent.record("fresh", "update")
        assert list(recent._expiry) == ["fresh"]


class TestNotify:
    def test_recording(self):
        notifier = RecordingNotifier()
        notifier.notify("ok", "done")
        notifier.notify("error", "failed", "destructive")
        assert notifier.toasts[0] == Toast("ok", "done", "default")
        assert notifier.errors == [Toast("error", "failed", "destructive")]
        notifier.clear()
        assert notifier.toasts == []

    def test_failing_notifier_is_swallowed(self):
        class Broken:
            def notify(self, title, description, variant="default"):
                raise RuntimeError("toast service down")

        safe_notify(Broken(), "title", "description")
