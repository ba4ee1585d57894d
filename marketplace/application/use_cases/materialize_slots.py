from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from marketplace.application.exceptions import InvalidRangeError, InvalidScheduleError, SlotConflictError
from marketplace.application.ports.slot_store import SlotStorePort
from marketplace.application.ports.template_store import TemplateStorePort
from marketplace.application.use_cases.availability import resolve_open_ranges, template_zone
from marketplace.application.utils.time_ranges import format_time, make_range, parse_time
from marketplace.domain.entities.availability import WEEKDAYS, AvailabilityTemplate
from marketplace.domain.entities.commission import ServiceType
from marketplace.domain.entities.offering import ExplicitSlotEntry, Offering, WeeklyScheduleEntry
from marketplace.domain.entities.slot import Slot, SlotKind, SlotStatus
from marketplace.domain.entities.time_range import TimeRange


def pack_range(value: TimeRange, duration_minutes: int, buffer_minutes: int = 0) -> list[TimeRange]:
    """
    Pack back-to-back windows of `duration_minutes` into `value`, leaving
    `buffer_minutes` between consecutive windows. A trailing remainder shorter
    than one window is dropped.
    """
    if duration_minutes <= 0:
        raise InvalidScheduleError("Slot duration must be positive", duration_minutes=duration_minutes)
    if buffer_minutes < 0:
        raise InvalidScheduleError("Slot buffer cannot be negative", buffer_minutes=buffer_minutes)

    windows: list[TimeRange] = []
    current = value.start
    while current + duration_minutes <= value.end:
        windows.append(TimeRange(current, current + duration_minutes))
        current += duration_minutes + buffer_minutes
    return windows


@dataclass(frozen=True)
class SkippedEntry:
    weekday: str
    start_time: str
    reason: str


@dataclass(frozen=True)
class MaterializationReport:
    slots: tuple[Slot, ...] = ()
    skipped: tuple[SkippedEntry, ...] = ()
    inserted: int = 0
    deleted: int = 0
    already_present: int = 0


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidScheduleError(f"Unknown timezone: {name!r}", timezone=name) from e


def _kind_for(offering: Offering) -> SlotKind:
    if offering.service_type == ServiceType.webinar:
        return SlotKind.webinar
    return SlotKind.consulting


class SlotMaterializer:
    def __init__(
        self,
        slots: SlotStorePort,
        templates: TemplateStorePort,
        clock: Callable[[], datetime] | None = None,
        horizon_days: int = 90,
        recurring_weeks: int = 12,
    ) -> None:
        self._slots = slots
        self._templates = templates
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._horizon_days = horizon_days
        self._recurring_weeks = recurring_weeks
        self._logger = logging.getLogger(__name__)

    def from_template(
        self,
        template: AvailabilityTemplate,
        start_date: date,
        days: int | None = None,
        duration: int | None = None,
        offering_id: str | None = None,
    ) -> list[Slot]:
        config = template.slot_config
        duration = duration or config.default_duration_minutes
        if config.allowed_durations and duration not in config.allowed_durations:
            raise InvalidScheduleError(
                f"Duration {duration} is not one of {list(config.allowed_durations)}",
                duration_minutes=duration,
            )
        days = self._horizon_days if days is None else days
        if days < 0:
            raise InvalidScheduleError("Horizon cannot be negative", days=days)

        now = self._clock()
        today = now.astimezone(template_zone(template)).date()

        generated: list[Slot] = []
        for offset in range(days):
            on_date = start_date + timedelta(days=offset)
            if on_date < today:
                continue
            for open_range in resolve_open_ranges(template, on_date):
                for window in pack_range(open_range, duration, config.buffer_minutes):
                    generated.append(
                        Slot(
                            id=uuid.uuid4().hex,
                            specialist_id=template.specialist_id,
                            date=on_date,
                            start_time=format_time(window.start),
                            end_time=format_time(window.end),
                            duration_minutes=duration,
                            kind=SlotKind.consulting,
                            capacity=1,
                            status=SlotStatus.active,
                            offering_id=offering_id,
                            timezone=template.timezone,
                            created_at=now,
                            updated_at=now,
                        )
                    )
        return generated

    def from_explicit_dates(self, offering: Offering, entries: Iterable[ExplicitSlotEntry]) -> list[Slot]:
        now = self._clock()
        return [
            self._offering_slot(offering, entry.date, entry.start_time, entry.duration_minutes, entry.capacity, now)
            for entry in entries
        ]

    def from_weekly_schedule(
        self,
        offering: Offering,
        entries: Iterable[WeeklyScheduleEntry],
        weeks: int | None = None,
    ) -> MaterializationReport:
        weeks = self._recurring_weeks if weeks is None else weeks
        now = self._clock()
        today = now.astimezone(_zone(offering.timezone)).date()

        generated: list[Slot] = []
        skipped: list[SkippedEntry] = []
        for entry in entries:
            if not entry.enabled:
                continue
            try:
                first = self._next_occurrence(entry.weekday, today)
                occurrences = [first + timedelta(weeks=week) for week in range(weeks)]
                generated.extend(
                    self._offering_slot(offering, day, entry.start_time, entry.duration_minutes, entry.capacity, now)
                    for day in occurrences
                )
            except (InvalidScheduleError, InvalidRangeError) as e:
                self._logger.warning(
                    "Skipping weekly schedule entry",
                    extra={"offering_id": offering.id, "weekday": entry.weekday, "error": str(e)},
                )
                skipped.append(SkippedEntry(weekday=entry.weekday, start_time=entry.start_time, reason=str(e)))
        return MaterializationReport(slots=tuple(generated), skipped=tuple(skipped))

    def materialize_offering(self, offering: Offering) -> MaterializationReport:
        explicit = self.from_explicit_dates(offering, offering.event_dates)
        weekly = self.from_weekly_schedule(offering, offering.weekly_schedule)
        return MaterializationReport(slots=tuple(explicit) + weekly.slots, skipped=weekly.skipped)

    def regenerate_for_offering(self, offering: Offering) -> MaterializationReport:
        """
        Replace every slot of the offering. Published offerings get freshly
        materialised slots, drafts end up with none. The store refuses the swap
        with SlotConflictError while any of the offering's slots is booked.
        """
        if not offering.is_published:
            deleted, _ = self._slots.replace_for_offering(offering.id, [])
            self._logger.info(
                "Slots removed for draft offering",
                extra={"offering_id": offering.id, "deleted": deleted},
            )
            return MaterializationReport(deleted=deleted)

        report = self.materialize_offering(offering)
        deleted, inserted = self._slots.replace_for_offering(offering.id, list(report.slots))
        self._logger.info(
            "Slots regenerated",
            extra={"offering_id": offering.id, "deleted": deleted, "inserted": inserted},
        )
        return MaterializationReport(
            slots=report.slots, skipped=report.skipped, inserted=inserted, deleted=deleted
        )

    def persist_template_slots(
        self,
        specialist_id: str,
        start_date: date | None = None,
        days: int | None = None,
        duration: int | None = None,
        offering_id: str | None = None,
    ) -> MaterializationReport:
        template = self._templates.get_active(specialist_id)
        if template is None:
            raise InvalidScheduleError(
                "Specialist has no active availability template", specialist_id=specialist_id
            )
        start_date = start_date or self._clock().astimezone(template_zone(template)).date()
        candidates = self.from_template(template, start_date, days=days, duration=duration, offering_id=offering_id)

        fresh = [
            slot for slot in candidates
            if self._slots.find_by_key(slot.specialist_id, slot.date, slot.start_time) is None
        ]
        inserted = self._slots.add_many(fresh) if fresh else 0
        self._logger.info(
            "Template slots persisted",
            extra={
                "specialist_id": specialist_id,
                "inserted": inserted,
                "already_present": len(candidates) - len(fresh),
            },
        )
        return MaterializationReport(
            slots=tuple(fresh), inserted=inserted, already_present=len(candidates) - len(fresh)
        )

    def create_appointment_slot(
        self,
        specialist_id: str,
        on_date: date,
        start_time: str,
        duration_minutes: int,
        timezone_name: str = "UTC",
        notes: str | None = None,
    ) -> Slot:
        """Single-capacity slot added by hand. Its key must not already exist."""
        window = self._window(start_time, duration_minutes)
        if self._slots.find_by_key(specialist_id, on_date, format_time(window.start)) is not None:
            raise SlotConflictError(
                "A slot already exists at this time",
                specialist_id=specialist_id,
                date=on_date.isoformat(),
                start_time=start_time,
            )
        _zone(timezone_name)
        now = self._clock()
        slot = Slot(
            id=uuid.uuid4().hex,
            specialist_id=specialist_id,
            date=on_date,
            start_time=format_time(window.start),
            end_time=format_time(window.end),
            duration_minutes=duration_minutes,
            kind=SlotKind.appointment,
            capacity=1,
            status=SlotStatus.available,
            timezone=timezone_name,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self._slots.add_many([slot])
        return slot

    def _offering_slot(
        self,
        offering: Offering,
        on_date: date,
        start_time: str,
        duration_minutes: int | None,
        capacity: int | None,
        now: datetime,
    ) -> Slot:
        duration = duration_minutes or offering.duration_minutes
        window = self._window(start_time, duration)
        seats = capacity if capacity is not None else offering.capacity
        if seats < 1:
            raise InvalidScheduleError("Slot capacity must be at least 1", capacity=seats)
        return Slot(
            id=uuid.uuid4().hex,
            specialist_id=offering.specialist_id,
            date=on_date,
            start_time=format_time(window.start),
            end_time=format_time(window.end),
            duration_minutes=duration,
            kind=_kind_for(offering),
            capacity=seats,
            status=SlotStatus.active,
            offering_id=offering.id,
            timezone=offering.timezone,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _window(start_time: str, duration_minutes: int) -> TimeRange:
        if duration_minutes <= 0:
            raise InvalidScheduleError("Slot duration must be positive", duration_minutes=duration_minutes)
        start = parse_time(start_time)
        return make_range(start, start + duration_minutes)

    @staticmethod
    def _next_occurrence(weekday: str, today: date) -> date:
        name = (weekday or "").strip().lower()
        if name not in WEEKDAYS:
            raise InvalidScheduleError(f"Unknown weekday: {weekday!r}", weekday=weekday)
        return today + timedelta(days=(WEEKDAYS.index(name) - today.weekday()) % 7)
