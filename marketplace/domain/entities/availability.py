from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class AvailabilityWindow:
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    is_available: bool = True


@dataclass(frozen=True)
class DaySchedule:
    enabled: bool = True
    ranges: tuple[AvailabilityWindow, ...] = ()


@dataclass(frozen=True)
class DateException:
    date: date
    is_available: bool = False
    ranges: tuple[AvailabilityWindow, ...] = ()  # override ranges when is_available


@dataclass(frozen=True)
class BreakRule:
    weekday: str
    start_time: str
    end_time: str
    recurring: bool = True
    on_date: date | None = None  # only consulted when recurring is False


@dataclass(frozen=True)
class SlotConfig:
    default_duration_minutes: int = 60
    allowed_durations: tuple[int, ...] = (30, 45, 60, 90)
    buffer_minutes: int = 0


@dataclass(frozen=True)
class BookingRules:
    min_notice_hours: int = 24
    max_advance_days: int = 90
    cancellation_deadline_hours: int = 24


@dataclass(frozen=True)
class AvailabilityTemplate:
    id: str
    specialist_id: str
    weekly_pattern: dict[str, DaySchedule] = field(default_factory=dict)
    date_exceptions: tuple[DateException, ...] = ()
    break_rules: tuple[BreakRule, ...] = ()
    slot_config: SlotConfig = SlotConfig()
    booking_rules: BookingRules = BookingRules()
    timezone: str = "UTC"
    is_active: bool = True
    created_at: datetime | None = None
    deactivated_at: datetime | None = None
