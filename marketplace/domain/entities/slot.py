from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from zoneinfo import ZoneInfo


class SlotKind(str, Enum):
    appointment = "appointment"  # single capacity, available -> booked
    consulting = "consulting"  # capacity family, active/inactive
    webinar = "webinar"  # capacity family, active/inactive


class SlotStatus(str, Enum):
    available = "available"
    booked = "booked"
    active = "active"
    inactive = "inactive"


class SlotBookingStatus(str, Enum):
    booked = "booked"
    cancelled_by_specialist = "cancelled_by_specialist"
    cancelled_by_customer = "cancelled_by_customer"
    completed = "completed"


@dataclass(frozen=True)
class MeetingDetails:
    meeting_id: str
    join_url: str
    host_url: str | None = None
    password: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class CancellationRecord:
    cancelled_by: str
    actor_role: str  # "customer" | "specialist" | "system"
    cancelled_at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class SlotBooking:
    customer_id: str
    booking_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    booked_at: datetime | None = None
    status: SlotBookingStatus = SlotBookingStatus.booked
    meeting: MeetingDetails | None = None
    cancellation: CancellationRecord | None = None

    @property
    def is_live(self) -> bool:
        return self.status == SlotBookingStatus.booked


@dataclass(frozen=True)
class Slot:
    id: str
    specialist_id: str
    date: date
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM"
    duration_minutes: int
    kind: SlotKind = SlotKind.consulting
    capacity: int = 1
    booked_count: int = 0
    status: SlotStatus = SlotStatus.active
    offering_id: str | None = None
    timezone: str = "UTC"
    bookings: tuple[SlotBooking, ...] = ()
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0  # bumped by the store on every compare-and-swap

    @property
    def is_single_capacity_family(self) -> bool:
        return self.kind == SlotKind.appointment

    @property
    def is_fully_booked(self) -> bool:
        return self.booked_count >= self.capacity

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.capacity - self.booked_count)

    @property
    def has_live_bookings(self) -> bool:
        return self.booked_count > 0 or any(entry.is_live for entry in self.bookings)

    @property
    def key(self) -> tuple[str, date, str]:
        return (self.specialist_id, self.date, self.start_time)

    def starts_at(self) -> datetime:
        hour, minute = (int(part) for part in self.start_time.split(":"))
        return datetime.combine(self.date, time(hour, minute), tzinfo=ZoneInfo(self.timezone))

    def ends_at(self) -> datetime:
        hour, minute = (int(part) for part in self.end_time.split(":"))
        if hour == 24:
            return datetime.combine(self.date + timedelta(days=1), time(0, 0), tzinfo=ZoneInfo(self.timezone))
        return datetime.combine(self.date, time(hour, minute), tzinfo=ZoneInfo(self.timezone))

    def live_booking_for(self, customer_id: str) -> SlotBooking | None:
        for entry in self.bookings:
            if entry.customer_id == customer_id and entry.is_live:
                return entry
        return None
