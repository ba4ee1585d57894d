from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from marketplace.domain.entities.availability import AvailabilityWindow, DaySchedule
from marketplace.domain.entities.commission import ServiceType
from marketplace.domain.entities.offering import Offering, OfferingStatus
from marketplace.domain.entities.slot import Slot, SlotKind, SlotStatus


# Monday 2030-01-07, 08:00 UTC
NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def workday(start: str = "09:00", end: str = "17:00") -> DaySchedule:
    return DaySchedule(enabled=True, ranges=(AvailabilityWindow(start, end),))


def make_slot(
    slot_id: str = "slot-1",
    on_date: date | None = None,
    start_time: str = "10:00",
    end_time: str = "11:00",
    kind: SlotKind = SlotKind.appointment,
    capacity: int = 1,
    specialist_id: str = "spec-1",
    offering_id: str | None = "offer-1",
) -> Slot:
    return Slot(
        id=slot_id,
        specialist_id=specialist_id,
        date=on_date or TODAY + timedelta(days=3),
        start_time=start_time,
        end_time=end_time,
        duration_minutes=60,
        kind=kind,
        capacity=capacity,
        status=SlotStatus.available if kind == SlotKind.appointment else SlotStatus.active,
        offering_id=offering_id,
    )


def make_offering(
    offering_id: str = "offer-1",
    price: int = 10000,
    service_type: ServiceType = ServiceType.consulting,
    status: OfferingStatus = OfferingStatus.published,
    **kwargs,
) -> Offering:
    return Offering(
        id=offering_id,
        specialist_id="spec-1",
        title="Career coaching",
        service_type=service_type,
        price=price,
        status=status,
        specialist_email="coach@example.com",
        specialist_name="Coach",
        **kwargs,
    )
