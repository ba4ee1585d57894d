"""
Open-range resolution from weekly patterns, date exceptions and break rules.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from marketplace.application.exceptions import InvalidRangeError, InvalidScheduleError
from marketplace.application.use_cases.availability import resolve_open_ranges
from marketplace.domain.entities.availability import (
    AvailabilityTemplate,
    AvailabilityWindow,
    BreakRule,
    DateException,
    DaySchedule,
)
from marketplace.domain.entities.time_range import TimeRange

from tests.factories import TODAY, workday


MONDAY = TODAY  # 2030-01-07
TUESDAY = TODAY + timedelta(days=1)


def _template(**kwargs) -> AvailabilityTemplate:
    defaults = {
        "id": "tpl-1",
        "specialist_id": "spec-1",
        "weekly_pattern": {"monday": workday(), "tuesday": workday()},
    }
    defaults.update(kwargs)
    return AvailabilityTemplate(**defaults)


def test_lunch_break_splits_workday():
    template = _template(break_rules=(BreakRule("monday", "12:00", "13:00"),))
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(540, 720), TimeRange(780, 1020)]
    # Tuesday has no break
    assert resolve_open_ranges(template, TUESDAY) == [TimeRange(540, 1020)]


def test_breaks_overlapping_each_other_apply_in_list_order():
    template = _template(
        break_rules=(
            BreakRule("monday", "12:00", "13:00"),
            BreakRule("monday", "12:30", "14:00"),
        )
    )
    # Second break only trims what the first one left behind
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(540, 720), TimeRange(840, 1020)]


def test_disabled_or_missing_day_has_no_ranges():
    template = _template(weekly_pattern={"monday": DaySchedule(enabled=False, ranges=workday().ranges)})
    assert resolve_open_ranges(template, MONDAY) == []
    assert resolve_open_ranges(template, TUESDAY) == []


def test_blocking_exception_wins_over_pattern():
    template = _template(date_exceptions=(DateException(date=MONDAY, is_available=False),))
    assert resolve_open_ranges(template, MONDAY) == []
    assert resolve_open_ranges(template, MONDAY + timedelta(days=7)) == [TimeRange(540, 1020)]


def test_available_exception_overrides_ranges():
    template = _template(
        date_exceptions=(
            DateException(date=MONDAY, is_available=True, ranges=(AvailabilityWindow("14:00", "16:00"),)),
        )
    )
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(840, 960)]


def test_breaks_still_apply_to_exception_ranges():
    template = _template(
        date_exceptions=(
            DateException(date=MONDAY, is_available=True, ranges=(AvailabilityWindow("10:00", "14:00"),)),
        ),
        break_rules=(BreakRule("monday", "12:00", "13:00"),),
    )
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(600, 720), TimeRange(780, 840)]


def test_one_off_break_only_hits_its_date():
    template = _template(
        break_rules=(BreakRule("monday", "09:00", "10:00", recurring=False, on_date=MONDAY + timedelta(days=7)),)
    )
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(540, 1020)]
    assert resolve_open_ranges(template, MONDAY + timedelta(days=7)) == [TimeRange(600, 1020)]


def test_windows_marked_unavailable_are_ignored():
    template = _template(
        weekly_pattern={
            "monday": DaySchedule(
                ranges=(AvailabilityWindow("09:00", "12:00"), AvailabilityWindow("13:00", "15:00", is_available=False))
            )
        }
    )
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(540, 720)]


def test_overlapping_windows_are_merged():
    template = _template(
        weekly_pattern={
            "monday": DaySchedule(ranges=(AvailabilityWindow("09:00", "12:00"), AvailabilityWindow("11:00", "13:00")))
        }
    )
    assert resolve_open_ranges(template, MONDAY) == [TimeRange(540, 780)]


def test_instant_is_read_in_template_timezone():
    """03:00 UTC on Tuesday is still Monday evening in New York."""
    template = _template(timezone="America/New_York")
    instant = datetime(2030, 1, 8, 3, 0, tzinfo=timezone.utc)
    assert resolve_open_ranges(template, instant) == resolve_open_ranges(template, MONDAY)


def test_create_template_replaces_active_version(availability, stores):
    first = availability.create_template("spec-1", {"monday": workday()})
    second = availability.create_template("spec-1", {"tuesday": workday()})

    assert availability.get_active_template("spec-1").id == second.id
    assert stores.templates.get(first.id).is_active is False
    assert availability.open_ranges_for("spec-1", MONDAY) == []
    assert availability.open_ranges_for("spec-1", TUESDAY) == [TimeRange(540, 1020)]


def test_create_template_validates_input(availability):
    with pytest.raises(InvalidScheduleError):
        availability.create_template("spec-1", {"funday": workday()})
    with pytest.raises(InvalidRangeError):
        availability.create_template("spec-1", {"monday": workday("17:00", "09:00")})
    with pytest.raises(InvalidScheduleError):
        availability.create_template("spec-1", {"monday": workday()}, timezone_name="Mars/Olympus")
    assert availability.get_active_template("spec-1") is None


def test_add_date_exception_creates_new_version(availability):
    original = availability.create_template("spec-1", {"monday": workday()})
    updated = availability.add_date_exception("spec-1", DateException(date=MONDAY, is_available=False))

    assert updated.id != original.id
    assert availability.open_ranges_for("spec-1", MONDAY) == []


def test_deactivated_template_yields_nothing(availability):
    template = availability.create_template("spec-1", {"monday": workday()})
    availability.deactivate_template(template.id)
    assert availability.open_ranges_for("spec-1", MONDAY) == []
    with pytest.raises(InvalidScheduleError):
        availability.add_date_exception("spec-1", DateException(date=date(2030, 2, 1)))
