from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from marketplace.domain.entities.slot import CancellationRecord, MeetingDetails


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no_show"


TERMINAL_BOOKING_STATUSES = frozenset(
    {BookingStatus.cancelled, BookingStatus.completed, BookingStatus.no_show}
)

ALLOWED_BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.pending: frozenset({BookingStatus.confirmed, BookingStatus.cancelled}),
    BookingStatus.confirmed: frozenset(
        {BookingStatus.completed, BookingStatus.cancelled, BookingStatus.no_show}
    ),
    BookingStatus.cancelled: frozenset(),
    BookingStatus.completed: frozenset(),
    BookingStatus.no_show: frozenset(),
}


@dataclass(frozen=True)
class CustomerInfo:
    customer_id: str
    email: str
    name: str | None = None


@dataclass(frozen=True)
class StatusChange:
    status: BookingStatus
    changed_at: datetime
    changed_by: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class RescheduleRecord:
    from_slot_id: str
    to_slot_id: str
    rescheduled_at: datetime
    rescheduled_by: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class Booking:
    id: str
    slot_id: str
    specialist_id: str
    customer_id: str
    customer_email: str | None = None
    customer_name: str | None = None
    offering_id: str | None = None
    status: BookingStatus = BookingStatus.pending
    status_history: tuple[StatusChange, ...] = ()
    payment_id: str | None = None
    meeting: MeetingDetails | None = None
    setup_incomplete: bool = False
    warnings: tuple[str, ...] = ()
    cancellation: CancellationRecord | None = None
    reschedule_history: tuple[RescheduleRecord, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

    @property
    def is_live(self) -> bool:
        return self.status in (BookingStatus.pending, BookingStatus.confirmed)
