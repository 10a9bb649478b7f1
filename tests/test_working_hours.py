"""
Tests for the weekly working hours calendar.
"""

import pytest

from slotbook.domain.exceptions import ValidationError
from slotbook.domain.models import DayOfWeek, WorkingHours
from slotbook.domain.working_hours import WorkingHoursCalendar
from tests.helpers import BUSINESS


class TestHoursFor:
    """Tests for hours lookup."""

    def test_open_day(self, calendar):
        """Test looking up an open weekday."""
        hours = calendar.hours_for(BUSINESS, DayOfWeek.MONDAY)

        assert hours is not None
        assert hours.open_minute == 540
        assert hours.close_minute == 1020

    def test_closed_day_returns_none(self, calendar):
        """Test that a closed day returns None."""
        assert calendar.hours_for(BUSINESS, DayOfWeek.SUNDAY) is None

    def test_unknown_business_is_closed(self, calendar):
        """Test that an unknown business is closed every day."""
        assert calendar.hours_for("nobody", "monday") is None

    def test_accepts_day_names(self, calendar):
        """Test that plain day names are accepted."""
        assert calendar.hours_for(BUSINESS, "saturday").close_minute == 780

    def test_knows_registered_businesses(self, calendar):
        """Test that registered businesses are known, even with no open days."""
        empty = WorkingHoursCalendar({"closed-for-renovation": []})

        assert calendar.knows(BUSINESS)
        assert not calendar.knows("nobody")
        assert empty.knows("closed-for-renovation")


class TestUpsert:
    """Tests for upsert semantics."""

    def test_upsert_replaces_existing_day(self, calendar):
        """Test that writing a day again replaces the old entry."""
        calendar.upsert(BUSINESS, WorkingHours.open_between("monday", "10:00", "12:00"))

        hours = calendar.hours_for(BUSINESS, "monday")

        assert (hours.open_minute, hours.close_minute) == (600, 720)
        assert len(calendar.week(BUSINESS)) == 7

    def test_start_must_precede_end(self, calendar):
        """Test that opening after closing is rejected."""
        with pytest.raises(ValidationError, match="must be before"):
            calendar.upsert(BUSINESS, WorkingHours.open_between("monday", "17:00", "09:00"))

    def test_equal_open_and_close_rejected(self, calendar):
        """Test that an empty opening window is rejected."""
        with pytest.raises(ValidationError):
            calendar.upsert(BUSINESS, WorkingHours.open_between("monday", "09:00", "09:00"))

    def test_closed_day_times_ignored(self):
        """Test that times of a closed day are not validated."""
        calendar = WorkingHoursCalendar()

        calendar.upsert(
            "b", WorkingHours(day=DayOfWeek.MONDAY, is_open=False, open_minute=900, close_minute=60)
        )

        assert calendar.hours_for("b", "monday") is None

    def test_failed_upsert_keeps_previous_entry(self, calendar):
        """Test that a rejected upsert leaves the old entry in place."""
        with pytest.raises(ValidationError):
            calendar.upsert(BUSINESS, WorkingHours.open_between("monday", "18:00", "08:00"))

        assert calendar.hours_for(BUSINESS, "monday").open_minute == 540


class TestToggleAndWeek:
    """Tests for toggling days and listing the week."""

    def test_close_and_reopen_keeps_times(self, calendar):
        """Test that closing and reopening a day keeps its times."""
        calendar.set_open(BUSINESS, "tuesday", False)
        assert calendar.hours_for(BUSINESS, "tuesday") is None

        calendar.set_open(BUSINESS, "tuesday", True)
        hours = calendar.hours_for(BUSINESS, "tuesday")
        assert (hours.open_minute, hours.close_minute) == (540, 1020)

    def test_open_unconfigured_day_rejected(self):
        """Test that a day without times cannot be opened."""
        calendar = WorkingHoursCalendar()

        with pytest.raises(ValidationError, match="No opening times"):
            calendar.set_open("b", "monday", True)

    def test_week_lists_all_days_in_order(self):
        """Test that the week lists all seven days, missing ones closed."""
        calendar = WorkingHoursCalendar(
            {"b": [WorkingHours.open_between("wednesday", "08:00", "12:00")]}
        )

        week = calendar.week("b")

        assert [entry.day for entry in week] == list(DayOfWeek)
        assert week[2].is_open
        assert not any(entry.is_open for i, entry in enumerate(week) if i != 2)
