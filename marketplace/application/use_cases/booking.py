from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from marketplace.application.exceptions import (
    BookingNotFoundError,
    BookingRuleViolationError,
    DuplicateEnrollmentError,
    InvalidTransitionError,
    MeetingProviderError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from marketplace.application.ports.booking_store import BookingStorePort
from marketplace.application.ports.meeting_provider import MeetingProviderPort, MeetingRequest
from marketplace.application.ports.notifier import NotificationKind, NotifierPort
from marketplace.application.ports.slot_store import SlotStorePort
from marketplace.application.ports.task_dispatcher import TaskDispatcherPort
from marketplace.application.ports.template_store import TemplateStorePort
from marketplace.domain.entities.booking import (
    ALLOWED_BOOKING_TRANSITIONS,
    Booking,
    BookingStatus,
    CustomerInfo,
    RescheduleRecord,
    StatusChange,
)
from marketplace.domain.entities.slot import (
    CancellationRecord,
    Slot,
    SlotBooking,
    SlotBookingStatus,
    SlotKind,
    SlotStatus,
)


CUSTOMER_ROLE = "customer"
SPECIALIST_ROLE = "specialist"
SYSTEM_ROLE = "system"

# Warning prefix on a booking whose seat on the named slot is still held
SLOT_RELEASE_PENDING = "slot_release_pending"


def _entry_status_for(actor_role: str) -> SlotBookingStatus:
    if actor_role == CUSTOMER_ROLE:
        return SlotBookingStatus.cancelled_by_customer
    return SlotBookingStatus.cancelled_by_specialist


@dataclass(frozen=True)
class BookingOutcome:
    booking: Booking
    slot: Slot | None
    degraded: bool = False
    warnings: tuple[str, ...] = ()


class BookingService:
    """
    Slot reservation and the booking lifecycle.

    Every slot and booking write goes through the store's compare-and-swap
    keyed on the version the caller read. A lost race on a seat is retried once
    against a fresh read before the caller gets SlotUnavailableError(reason="busy").
    """

    def __init__(
        self,
        slots: SlotStorePort,
        bookings: BookingStorePort,
        templates: TemplateStorePort,
        meetings: MeetingProviderPort | None = None,
        notifier: NotifierPort | None = None,
        dispatcher: TaskDispatcherPort | None = None,
        clock: Callable[[], datetime] | None = None,
        max_attempts: int = 2,
    ) -> None:
        self._slots = slots
        self._bookings = bookings
        self._templates = templates
        self._meetings = meetings
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._max_attempts = max_attempts
        self._logger = logging.getLogger(__name__)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    def list_for_customer(self, customer_id: str) -> list[Booking]:
        return self._bookings.list_for_customer(customer_id)

    def book_slot(self, slot_id: str, customer: CustomerInfo, offering_id: str | None = None) -> Booking:
        now = self._clock()
        booking_id = uuid.uuid4().hex
        slot = self._reserve(slot_id, customer, booking_id, now)

        booking = Booking(
            id=booking_id,
            slot_id=slot.id,
            specialist_id=slot.specialist_id,
            customer_id=customer.customer_id,
            customer_email=customer.email,
            customer_name=customer.name,
            offering_id=offering_id or slot.offering_id,
            status=BookingStatus.pending,
            status_history=(StatusChange(BookingStatus.pending, now, customer.customer_id),),
            created_at=now,
            updated_at=now,
        )
        self._bookings.add(booking)
        self._logger.info(
            "Slot booked",
            extra={
                "booking_id": booking.id,
                "slot_id": slot.id,
                "customer_id": customer.customer_id,
                "booked_count": slot.booked_count,
            },
        )
        return booking

    def confirm(self, booking_id: str, actor_id: str | None = None) -> BookingOutcome:
        booking = self.get_booking(booking_id)
        confirmed = self._transition(booking, BookingStatus.confirmed, actor_id)
        slot = self._slots.get(confirmed.slot_id)

        outcome = self._attach_meeting(confirmed, slot)
        self._notify(
            NotificationKind.booking_confirmed,
            {
                "booking_id": outcome.booking.id,
                "customer_email": outcome.booking.customer_email,
                "customer_name": outcome.booking.customer_name,
                "specialist_id": outcome.booking.specialist_id,
                "date": slot.date.isoformat() if slot else None,
                "start_time": slot.start_time if slot else None,
                "join_url": outcome.booking.meeting.join_url if outcome.booking.meeting else None,
            },
        )
        return outcome

    def cancel(
        self,
        booking_id: str,
        actor_id: str,
        actor_role: str = CUSTOMER_ROLE,
        reason: str | None = None,
    ) -> Booking:
        booking = self.get_booking(booking_id)
        now = self._clock()
        if actor_role == CUSTOMER_ROLE:
            self._check_cancellation_deadline(booking, now)

        record = CancellationRecord(cancelled_by=actor_id, actor_role=actor_role, cancelled_at=now, reason=reason)
        cancelled = self._transition(booking, BookingStatus.cancelled, actor_id, reason, cancellation=record)
        cancelled = self._release_or_flag(cancelled, cancelled.slot_id, _entry_status_for(actor_role), record)
        self._logger.info(
            "Booking cancelled",
            extra={"booking_id": booking_id, "actor_id": actor_id, "actor_role": actor_role},
        )
        self._notify(
            NotificationKind.booking_cancelled,
            {
                "booking_id": cancelled.id,
                "customer_email": cancelled.customer_email,
                "specialist_id": cancelled.specialist_id,
                "cancelled_by": actor_role,
                "reason": reason,
            },
        )
        return cancelled

    def complete(self, booking_id: str, actor_id: str | None = None) -> Booking:
        booking = self.get_booking(booking_id)
        completed = self._transition(booking, BookingStatus.completed, actor_id)
        self._update_entry(completed.slot_id, completed.id, status=SlotBookingStatus.completed)
        return completed

    def mark_no_show(self, booking_id: str, actor_id: str | None = None, reason: str | None = None) -> Booking:
        booking = self.get_booking(booking_id)
        return self._transition(booking, BookingStatus.no_show, actor_id, reason)

    def repair_release(self, booking_id: str) -> Booking:
        """Retry the seat releases a contended cancel or reschedule left pending."""
        booking = self.get_booking(booking_id)
        pending = tuple(w for w in booking.warnings if w.startswith(f"{SLOT_RELEASE_PENDING}:"))
        if not pending:
            return booking

        record = booking.cancellation
        entry_status = _entry_status_for(record.actor_role if record else SPECIALIST_ROLE)
        for marker in pending:
            self._release(marker.split(":", 1)[1], booking.id, entry_status, record)

        repaired = self._amend_booking(
            booking, lambda current: replace(current, warnings=tuple(w for w in current.warnings if w not in pending))
        )
        self._logger.info("Pending seat release repaired", extra={"booking_id": booking_id})
        return repaired or self.get_booking(booking_id)

    def reschedule(
        self,
        booking_id: str,
        to_slot_id: str,
        actor_id: str,
        reason: str | None = None,
    ) -> BookingOutcome:
        booking = self.get_booking(booking_id)
        if not booking.is_live:
            raise InvalidTransitionError(
                f"Cannot reschedule a {booking.status.value} booking", booking_id=booking_id
            )
        if to_slot_id == booking.slot_id:
            raise SlotUnavailableError("Booking is already on this slot", reason="same_slot", slot_id=to_slot_id)

        target = self._slots.get(to_slot_id)
        if target is None:
            raise SlotNotFoundError(f"Slot {to_slot_id} not found", slot_id=to_slot_id)
        if target.specialist_id != booking.specialist_id:
            raise SlotUnavailableError(
                "Target slot belongs to another specialist", reason="different_specialist", slot_id=to_slot_id
            )

        now = self._clock()
        actor_role = CUSTOMER_ROLE if actor_id == booking.customer_id else SPECIALIST_ROLE
        if actor_role == CUSTOMER_ROLE:
            self._check_cancellation_deadline(booking, now)

        customer = CustomerInfo(booking.customer_id, booking.customer_email or "", booking.customer_name)
        new_slot = self._reserve(to_slot_id, customer, booking.id, now)

        moved = replace(
            booking,
            slot_id=new_slot.id,
            meeting=None,
            setup_incomplete=False,
            warnings=(),
            reschedule_history=booking.reschedule_history
            + (RescheduleRecord(booking.slot_id, new_slot.id, now, actor_id, reason),),
            updated_at=now,
            version=booking.version + 1,
        )
        if not self._bookings.compare_and_swap(booking.id, booking.version, moved):
            self._release(new_slot.id, booking.id, SlotBookingStatus.cancelled_by_specialist, None)
            raise InvalidTransitionError("Booking changed while rescheduling", booking_id=booking_id)

        record = CancellationRecord(cancelled_by=actor_id, actor_role=actor_role, cancelled_at=now, reason=reason)
        moved = self._release_or_flag(moved, booking.slot_id, _entry_status_for(actor_role), record)
        self._logger.info(
            "Booking rescheduled",
            extra={"booking_id": booking.id, "from_slot_id": booking.slot_id, "to_slot_id": new_slot.id},
        )

        if moved.status == BookingStatus.confirmed:
            return self._attach_meeting(moved, self._slots.get(new_slot.id))
        return BookingOutcome(booking=moved, slot=self._slots.get(new_slot.id))

    def _reserve(self, slot_id: str, customer: CustomerInfo, booking_id: str, now: datetime) -> Slot:
        for attempt in range(1, self._max_attempts + 1):
            slot = self._slots.get(slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Slot {slot_id} not found", slot_id=slot_id)
            self._ensure_bookable(slot, customer, now)

            entry = SlotBooking(
                customer_id=customer.customer_id,
                booking_id=booking_id,
                customer_email=customer.email,
                customer_name=customer.name,
                booked_at=now,
            )
            booked_count = slot.booked_count + 1
            updated = replace(
                slot,
                bookings=slot.bookings + (entry,),
                booked_count=booked_count,
                status=SlotStatus.booked if slot.kind == SlotKind.appointment else slot.status,
                updated_at=now,
                version=slot.version + 1,
            )
            if self._slots.compare_and_swap(slot.id, slot.version, updated):
                return updated
            self._logger.info(
                "Slot changed concurrently, retrying",
                extra={"slot_id": slot_id, "attempt": attempt},
            )

        raise SlotUnavailableError("Slot is being booked by someone else", reason="busy", slot_id=slot_id)

    def _ensure_bookable(self, slot: Slot, customer: CustomerInfo, now: datetime) -> None:
        if slot.live_booking_for(customer.customer_id) is not None:
            raise DuplicateEnrollmentError(
                "Customer already holds a booking on this slot",
                slot_id=slot.id,
                customer_id=customer.customer_id,
            )

        if slot.kind == SlotKind.appointment:
            if slot.status != SlotStatus.available:
                raise SlotUnavailableError("Slot is already booked", reason="booked", slot_id=slot.id)
        elif slot.status != SlotStatus.active:
            raise SlotUnavailableError("Slot is not active", reason="inactive", slot_id=slot.id)
        elif slot.is_fully_booked:
            raise SlotUnavailableError("Slot is fully booked", reason="full", slot_id=slot.id)

        starts_at = slot.starts_at()
        if starts_at <= now:
            raise SlotUnavailableError("Slot has already started", reason="past", slot_id=slot.id)

        template = self._templates.get_active(slot.specialist_id)
        if template is None:
            return
        rules = template.booking_rules
        lead = starts_at - now
        if lead < timedelta(hours=rules.min_notice_hours):
            raise SlotUnavailableError(
                f"Slot must be booked at least {rules.min_notice_hours} hours ahead",
                reason="min_notice",
                slot_id=slot.id,
            )
        if lead > timedelta(days=rules.max_advance_days):
            raise SlotUnavailableError(
                f"Slot cannot be booked more than {rules.max_advance_days} days ahead",
                reason="max_advance",
                slot_id=slot.id,
            )

    def _check_cancellation_deadline(self, booking: Booking, now: datetime) -> None:
        slot = self._slots.get(booking.slot_id)
        template = self._templates.get_active(booking.specialist_id)
        if slot is None or template is None:
            return
        deadline = slot.starts_at() - timedelta(hours=template.booking_rules.cancellation_deadline_hours)
        if now > deadline:
            raise BookingRuleViolationError(
                f"Bookings can only be changed up to {template.booking_rules.cancellation_deadline_hours} "
                "hours before the start",
                booking_id=booking.id,
            )

    def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        actor_id: str | None,
        reason: str | None = None,
        **changes: Any,
    ) -> Booking:
        current = booking
        for _ in range(self._max_attempts):
            if target not in ALLOWED_BOOKING_TRANSITIONS[current.status]:
                raise InvalidTransitionError(
                    f"Cannot move booking from {current.status.value} to {target.value}",
                    booking_id=current.id,
                    from_status=current.status.value,
                    to_status=target.value,
                )
            now = self._clock()
            updated = replace(
                current,
                status=target,
                status_history=current.status_history + (StatusChange(target, now, actor_id, reason),),
                updated_at=now,
                version=current.version + 1,
                **changes,
            )
            if self._bookings.compare_and_swap(current.id, current.version, updated):
                return updated
            current = self.get_booking(booking.id)

        raise InvalidTransitionError(
            "Booking was changed concurrently",
            booking_id=booking.id,
            to_status=target.value,
        )

    def _amend_booking(self, booking: Booking, change: Callable[[Booking], Booking]) -> Booking | None:
        """
        Apply `change` to the stored booking without moving its status or slot.
        Returns None once the booking has moved on to another status or slot.
        """
        current = booking
        for _ in range(self._max_attempts):
            updated = replace(change(current), updated_at=self._clock(), version=current.version + 1)
            if self._bookings.compare_and_swap(current.id, current.version, updated):
                return updated
            current = self._bookings.get(booking.id)
            if current is None or current.status != booking.status or current.slot_id != booking.slot_id:
                break

        self._logger.warning(
            "Booking changed before it could be updated",
            extra={"booking_id": booking.id, "slot_id": booking.slot_id},
        )
        return None

    def _attach_meeting(self, booking: Booking, slot: Slot | None) -> BookingOutcome:
        if self._meetings is None or slot is None:
            return BookingOutcome(booking=booking, slot=slot)

        request = MeetingRequest(
            host_ref=slot.specialist_id,
            participant_email=booking.customer_email,
            start_time=slot.starts_at(),
            end_time=slot.ends_at(),
            topic=f"Session with {booking.customer_name or booking.customer_email or booking.customer_id}",
        )
        try:
            meeting = self._meetings.create_meeting(request)
        except MeetingProviderError as e:
            warning = f"Meeting setup failed: {e}"
            self._logger.warning(
                "Meeting creation failed, booking stays confirmed",
                extra={"booking_id": booking.id, "slot_id": slot.id, "error": str(e)},
            )
            degraded = self._amend_booking(
                booking, lambda current: replace(current, setup_incomplete=True, warnings=current.warnings + (warning,))
            )
            return BookingOutcome(
                booking=degraded or self.get_booking(booking.id), slot=slot, degraded=True, warnings=(warning,)
            )

        with_meeting = self._amend_booking(
            booking, lambda current: replace(current, meeting=meeting, setup_incomplete=False)
        )
        if with_meeting is None:
            # Rescheduled or cancelled while the meeting was being created
            return BookingOutcome(
                booking=self.get_booking(booking.id),
                slot=self._slots.get(slot.id),
                warnings=("Booking changed before the meeting could be attached",),
            )
        updated_slot = self._update_entry(slot.id, booking.id, meeting=meeting) or slot
        return BookingOutcome(booking=with_meeting, slot=updated_slot)

    def _release_or_flag(
        self,
        booking: Booking,
        slot_id: str,
        entry_status: SlotBookingStatus,
        record: CancellationRecord | None,
    ) -> Booking:
        """
        Release the booking's seat on `slot_id`. The booking change is already
        stored, so a slot that stays contended leaves a pending-release warning
        on the booking for `repair_release` instead of an error.
        """
        try:
            self._release(slot_id, booking.id, entry_status, record)
            return booking
        except SlotUnavailableError:
            self._logger.error(
                "Seat not released, booking flagged for repair",
                extra={"booking_id": booking.id, "slot_id": slot_id},
            )
            marker = f"{SLOT_RELEASE_PENDING}:{slot_id}"
            flagged = self._amend_booking(
                booking, lambda current: replace(current, warnings=current.warnings + (marker,))
            )
            return flagged or self.get_booking(booking.id)

    def _release(
        self,
        slot_id: str,
        booking_id: str,
        entry_status: SlotBookingStatus,
        record: CancellationRecord | None,
    ) -> Slot | None:
        for attempt in range(1, self._max_attempts + 1):
            slot = self._slots.get(slot_id)
            if slot is None:
                self._logger.warning(
                    "Slot for released booking no longer exists",
                    extra={"slot_id": slot_id, "booking_id": booking_id},
                )
                return None
            entries = tuple(
                replace(entry, status=entry_status, cancellation=record)
                if entry.booking_id == booking_id and entry.is_live
                else entry
                for entry in slot.bookings
            )
            if entries == slot.bookings:
                return slot

            booked_count = max(0, slot.booked_count - 1)
            status = slot.status
            if slot.kind == SlotKind.appointment and booked_count < slot.capacity:
                status = SlotStatus.available
            updated = replace(
                slot,
                bookings=entries,
                booked_count=booked_count,
                status=status,
                updated_at=self._clock(),
                version=slot.version + 1,
            )
            if self._slots.compare_and_swap(slot.id, slot.version, updated):
                return updated
            self._logger.info(
                "Slot changed concurrently while releasing, retrying",
                extra={"slot_id": slot_id, "attempt": attempt},
            )

        raise SlotUnavailableError("Slot is being updated by someone else", reason="busy", slot_id=slot_id)

    def _update_entry(self, slot_id: str, booking_id: str, **changes: Any) -> Slot | None:
        """Rewrite the slot's booking entry without touching capacity."""
        for _ in range(self._max_attempts):
            slot = self._slots.get(slot_id)
            if slot is None:
                return None
            entries = tuple(
                replace(entry, **changes) if entry.booking_id == booking_id else entry
                for entry in slot.bookings
            )
            updated = replace(slot, bookings=entries, updated_at=self._clock(), version=slot.version + 1)
            if self._slots.compare_and_swap(slot.id, slot.version, updated):
                return updated
        self._logger.warning(
            "Could not update slot booking entry",
            extra={"slot_id": slot_id, "booking_id": booking_id},
        )
        return None

    def _notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        if self._notifier is None or self._dispatcher is None:
            return
        self._dispatcher.dispatch(kind.value, self._notifier.notify, kind, payload)
