from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from marketplace.application.exceptions import InvalidScheduleError
from marketplace.application.ports.template_store import TemplateStorePort
from marketplace.application.utils.time_ranges import (
    merge_overlapping,
    range_from_strings,
    subtract_all,
)
from marketplace.domain.entities.availability import (
    WEEKDAYS,
    AvailabilityTemplate,
    AvailabilityWindow,
    BookingRules,
    BreakRule,
    DateException,
    DaySchedule,
    SlotConfig,
)
from marketplace.domain.entities.time_range import TimeRange


def template_zone(template: AvailabilityTemplate) -> ZoneInfo:
    try:
        return ZoneInfo(template.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidScheduleError(f"Unknown timezone: {template.timezone!r}", timezone=template.timezone) from e


def local_date(template: AvailabilityTemplate, on_date: date | datetime) -> date:
    """Calendar date in the template's timezone. Bare dates are taken as already local."""
    if isinstance(on_date, datetime):
        moment = on_date if on_date.tzinfo else on_date.replace(tzinfo=timezone.utc)
        return moment.astimezone(template_zone(template)).date()
    return on_date


def weekday_name(on_date: date) -> str:
    return WEEKDAYS[on_date.weekday()]


def _find_exception(template: AvailabilityTemplate, on_date: date) -> DateException | None:
    for exception in template.date_exceptions:
        if exception.date == on_date:
            return exception
    return None


def _breaks_for(template: AvailabilityTemplate, weekday: str, on_date: date) -> list[TimeRange]:
    breaks: list[TimeRange] = []
    for rule in template.break_rules:
        if rule.weekday.lower() != weekday:
            continue
        if not rule.recurring and rule.on_date is not None and rule.on_date != on_date:
            continue
        breaks.append(range_from_strings(rule.start_time, rule.end_time))
    return breaks


def _base_windows(template: AvailabilityTemplate, on_date: date, weekday: str) -> tuple[AvailabilityWindow, ...]:
    exception = _find_exception(template, on_date)
    if exception is not None:
        if not exception.is_available:
            return ()
        if exception.ranges:
            return exception.ranges

    day = template.weekly_pattern.get(weekday)
    if day is None or not day.enabled:
        return ()
    return day.ranges


def resolve_open_ranges(template: AvailabilityTemplate, on_date: date | datetime) -> list[TimeRange]:
    """
    Open time ranges for one calendar date.

    A blocking date exception wins outright; an available exception with its own
    ranges replaces the weekly pattern for that date. Break rules for the weekday
    are then subtracted one after another in the order they are listed.
    """
    day = local_date(template, on_date)
    weekday = weekday_name(day)

    windows = _base_windows(template, day, weekday)
    base = [
        range_from_strings(window.start_time, window.end_time)
        for window in windows
        if window.is_available
    ]
    if not base:
        return []

    open_ranges = subtract_all(base, _breaks_for(template, weekday, day))
    return merge_overlapping(open_ranges)


def validate_template(template: AvailabilityTemplate) -> None:
    template_zone(template)

    for weekday, day in template.weekly_pattern.items():
        if weekday not in WEEKDAYS:
            raise InvalidScheduleError(f"Unknown weekday in weekly pattern: {weekday!r}", weekday=weekday)
        for window in day.ranges:
            range_from_strings(window.start_time, window.end_time)

    for exception in template.date_exceptions:
        for window in exception.ranges:
            range_from_strings(window.start_time, window.end_time)

    for rule in template.break_rules:
        if rule.weekday.lower() not in WEEKDAYS:
            raise InvalidScheduleError(f"Unknown weekday in break rule: {rule.weekday!r}", weekday=rule.weekday)
        range_from_strings(rule.start_time, rule.end_time)

    config = template.slot_config
    if config.default_duration_minutes <= 0:
        raise InvalidScheduleError("Default slot duration must be positive")
    if config.buffer_minutes < 0:
        raise InvalidScheduleError("Slot buffer cannot be negative")
    if any(duration <= 0 for duration in config.allowed_durations):
        raise InvalidScheduleError("Allowed durations must be positive")

    rules = template.booking_rules
    if rules.min_notice_hours < 0 or rules.max_advance_days <= 0 or rules.cancellation_deadline_hours < 0:
        raise InvalidScheduleError("Booking rules must be non-negative with a positive horizon")


class AvailabilityService:
    def __init__(
        self,
        templates: TemplateStorePort,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._templates = templates
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger(__name__)

    def create_template(
        self,
        specialist_id: str,
        weekly_pattern: dict[str, DaySchedule],
        date_exceptions: tuple[DateException, ...] = (),
        break_rules: tuple[BreakRule, ...] = (),
        slot_config: SlotConfig | None = None,
        booking_rules: BookingRules | None = None,
        timezone_name: str = "UTC",
    ) -> AvailabilityTemplate:
        template = AvailabilityTemplate(
            id=uuid.uuid4().hex,
            specialist_id=specialist_id,
            weekly_pattern={key.lower(): value for key, value in weekly_pattern.items()},
            date_exceptions=tuple(date_exceptions),
            break_rules=tuple(break_rules),
            slot_config=slot_config or SlotConfig(),
            booking_rules=booking_rules or BookingRules(),
            timezone=timezone_name or "UTC",
            is_active=True,
            created_at=self._clock(),
        )
        validate_template(template)
        stored = self._templates.activate(template)
        self._logger.info(
            "Availability template activated",
            extra={"specialist_id": specialist_id, "template_id": stored.id},
        )
        return stored

    def get_active_template(self, specialist_id: str) -> AvailabilityTemplate | None:
        return self._templates.get_active(specialist_id)

    def deactivate_template(self, template_id: str) -> AvailabilityTemplate | None:
        template = self._templates.deactivate(template_id)
        if template is not None:
            self._logger.info("Availability template deactivated", extra={"template_id": template_id})
        return template

    def add_date_exception(self, specialist_id: str, exception: DateException) -> AvailabilityTemplate:
        """Replace any exception for the same date and re-activate as a new template version."""
        current = self._require_active(specialist_id)
        for window in exception.ranges:
            range_from_strings(window.start_time, window.end_time)
        exceptions = tuple(e for e in current.date_exceptions if e.date != exception.date) + (exception,)
        return self._templates.activate(
            replace(current, id=uuid.uuid4().hex, date_exceptions=exceptions, created_at=self._clock())
        )

    def open_ranges_for(self, specialist_id: str, on_date: date | datetime) -> list[TimeRange]:
        template = self._templates.get_active(specialist_id)
        if template is None:
            return []
        return resolve_open_ranges(template, on_date)

    def _require_active(self, specialist_id: str) -> AvailabilityTemplate:
        template = self._templates.get_active(specialist_id)
        if template is None:
            raise InvalidScheduleError(
                "Specialist has no active availability template", specialist_id=specialist_id
            )
        return template
