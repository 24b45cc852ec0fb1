"""Tests for row models, change events, messages and configuration."""

import pytest
import structlog
from pydantic import ValidationError

from conftest import COURSES, make_row
from src.timetable.config import TimetableConfig
from src.timetable.errors import MissingFieldError, RemoteError, UniqueConstraintViolation, UpdateError
from src.timetable.logging import bind_week_context, clear_week_context
from src.timetable.messages import message
from src.timetable.models import WRITABLE_COLUMNS, ChangeEvent, ScheduleEntry, ScheduleInput


class TestScheduleEntry:
    def test_from_row_with_join_and_extra_columns(self):
        row = {**make_row(), "id": 7, "created_at": "2026-10-19T08:00:00Z", "teaching_courses": COURSES[1]}
        entry = ScheduleEntry.from_row(row)
        assert entry.id == 7
        assert entry.course.name == "Python Basics"
        assert entry.display_name == "Python Basics"
        assert entry.instructor_profile is None

    def test_from_row_without_join(self):
        entry = ScheduleEntry.from_row({**make_row(), "id": 7})
        assert entry.course is None
        assert entry.display_name is None

    def test_day_out_of_range(self):
        with pytest.raises(ValidationError):
            ScheduleEntry.from_row({**make_row(day=7), "id": 1})

    def test_temporary_id(self):
        assert ScheduleEntry.from_row({**make_row(), "id": "temp-abc"}).is_temporary
        assert not ScheduleEntry.from_row({**make_row(), "id": 3}).is_temporary

    def test_to_row_has_no_display_fields(self):
        entry = ScheduleEntry.from_row({**make_row(), "id": 7, "teaching_courses": COURSES[1]})
        row = entry.to_row()
        assert set(row) == set(WRITABLE_COLUMNS)
        assert "teaching_courses" not in row
        assert "id" not in row

    def test_occupies_compares_normalized_slot(self):
        entry = ScheduleEntry.from_row({**make_row(slot="8:00"), "id": 1})
        assert entry.normalized_slot == "08:00"
        assert entry.occupies(2, "08:00", "I1")
        assert not entry.occupies(2, "08:00", "I2")
        assert not entry.occupies(3, "08:00", "I1")

    def test_with_display_from_keeps_course_when_unchanged(self):
        old = ScheduleEntry.from_row({**make_row(), "id": 1, "teaching_courses": COURSES[1]})
        new = ScheduleEntry.from_row({**make_row(duration=2), "id": 1})
        merged = new.with_display_from(old)
        assert merged.course.name == "Python Basics"
        assert merged.duration == 2

    def test_with_display_from_drops_course_when_changed(self):
        old = ScheduleEntry.from_row({**make_row(), "id": 1, "teaching_courses": COURSES[1]})
        new = ScheduleEntry.from_row({**make_row(course_id=2), "id": 1})
        assert new.with_display_from(old).course is None


class TestScheduleInput:
    def test_zero_is_legal(self):
        data = ScheduleInput(day_of_week=0, time_slot_index=0, course_id=1, instructor_id="I1")
        assert data.day_of_week == 0
        assert data.time_slot_index == 0
        assert data.duration == 1

    def test_fields_optional_until_create(self):
        data = ScheduleInput.model_validate({"course_id": 1})
        assert data.day_of_week is None
        assert data.time_slot_index is None

    def test_slot_index_range(self):
        with pytest.raises(ValidationError):
            ScheduleInput(day_of_week=1, time_slot_index=13)

    def test_course_data(self):
        data = ScheduleInput.model_validate({"day_of_week": 1, "time_slot_index": 2, "course_data": COURSES[2]})
        assert data.course_data.name == "Data Analysis"


class TestChangeEvent:
    def test_wire_shape(self):
        event = ChangeEvent.model_validate(
            {"eventType": "insert", "new": {"id": 5, "year": 2026, "week_number": 43}, "old": {}}
        )
        assert event.event_type == "INSERT"
        assert event.old is None
        assert event.record_id == 5
        assert event.week_key == (2026, 43)

    def test_delete_uses_old(self):
        event = ChangeEvent.model_validate({"eventType": "DELETE", "new": {}, "old": {"id": 9}})
        assert event.new is None
        assert event.record_id == 9
        assert event.week_key == (None, None)

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            ChangeEvent.model_validate({"eventType": "TRUNCATE"})


class TestErrors:
    def test_remote_codes(self):
        assert RemoteError("dup", code="23505").is_unique_violation
        assert RemoteError("bad", code="23514").is_check_violation
        assert not RemoteError("other").is_unique_violation

    def test_unique_violation_is_a_write_error_of_both_kinds(self):
        error = UniqueConstraintViolation("dup", user_message="occupied")
        assert isinstance(error, UpdateError)
        assert error.user_message == "occupied"
        assert error.code == "unique_violation"

    def test_missing_field(self):
        error = MissingFieldError("day_of_week")
        assert error.field == "day_of_week"
        assert isinstance(error, ValueError)
        assert error.user_message == "day_of_week is required"


class TestMessages:
    def test_thai_is_default(self):
        assert message("delete_success", name="Excel") == "ลบ Excel แล้ว"

    def test_english(self):
        assert message("delete_success", "en", name="Excel") == "Deleted Excel"

    def test_unknown_locale_falls_back(self):
        assert message("not_found", "fr") == message("not_found", "th")


class TestConfig:
    def test_defaults(self):
        config = TimetableConfig()
        assert config.create_echo_window_seconds == 3.0
        assert config.delete_echo_window_seconds == 5.0
        assert config.conflict_refresh_delay_seconds == 1.0
        assert config.schedule_type == "weekends"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TIMETABLE_TENANT", "acme")
        monkeypatch.setenv("TIMETABLE_DELETE_ECHO_WINDOW_SECONDS", "7.5")
        config = TimetableConfig()
        assert config.tenant == "acme"
        assert config.delete_echo_window_seconds == 7.5


class TestLogContext:
    def test_week_context_bound_and_cleared(self):
        bind_week_context("login", 2026, 43)
        assert structlog.contextvars.get_contextvars()["week_number"] == 43
        clear_week_context()
        assert "week_number" not in structlog.contextvars.get_contextvars()
