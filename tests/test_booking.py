"""
Booking lifecycle against the in-memory stores: reservation, capacity,
concurrency, meetings, cancellation and rescheduling.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta

import pytest

from marketplace.application.exceptions import (
    BookingNotFoundError,
    BookingRuleViolationError,
    DuplicateEnrollmentError,
    InvalidTransitionError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from marketplace.application.ports.notifier import NotificationKind
from marketplace.application.use_cases.booking import SLOT_RELEASE_PENDING, SPECIALIST_ROLE, BookingService
from marketplace.domain.entities.availability import BookingRules
from marketplace.domain.entities.booking import BookingStatus, CustomerInfo
from marketplace.domain.entities.slot import SlotBookingStatus, SlotKind, SlotStatus
from marketplace.infrastructure.dispatch.inline import InlineTaskDispatcher
from marketplace.infrastructure.meetings.mock_meetings import MockMeetingProvider
from marketplace.infrastructure.store.memory_store import MemoryCollection
from marketplace.infrastructure.store.repositories import SlotRepository

from tests.factories import TODAY, make_slot, workday


def _customer(n: int) -> CustomerInfo:
    return CustomerInfo(customer_id=f"cust-{n}", email=f"c{n}@example.com", name=f"Customer {n}")


def test_booking_appointment_slot_marks_it_booked(booking_service, stores, customer):
    stores.slots.add_many([make_slot()])

    booking = booking_service.book_slot("slot-1", customer)

    slot = stores.slots.get("slot-1")
    assert booking.status == BookingStatus.pending
    assert booking.offering_id == "offer-1"
    assert (slot.status, slot.booked_count) == (SlotStatus.booked, 1)
    assert slot.bookings[0].booking_id == booking.id


def test_booked_appointment_rejects_second_customer(booking_service, stores, customer):
    stores.slots.add_many([make_slot()])
    booking_service.book_slot("slot-1", customer)

    with pytest.raises(SlotUnavailableError) as exc_info:
        booking_service.book_slot("slot-1", _customer(2))
    assert exc_info.value.reason == "booked"


def test_capacity_slot_fills_up(booking_service, stores):
    stores.slots.add_many([make_slot(kind=SlotKind.consulting, capacity=2)])
    booking_service.book_slot("slot-1", _customer(1))
    booking_service.book_slot("slot-1", _customer(2))

    with pytest.raises(SlotUnavailableError) as exc_info:
        booking_service.book_slot("slot-1", _customer(3))
    assert exc_info.value.reason == "full"
    assert stores.slots.get("slot-1").booked_count == 2


def test_same_customer_cannot_book_slot_twice(booking_service, stores, customer):
    stores.slots.add_many([make_slot(kind=SlotKind.consulting, capacity=5)])
    booking_service.book_slot("slot-1", customer)

    with pytest.raises(DuplicateEnrollmentError):
        booking_service.book_slot("slot-1", customer)


def test_unknown_inactive_and_past_slots_are_rejected(booking_service, stores, customer):
    inactive = replace(
        make_slot("slot-inactive", kind=SlotKind.consulting, start_time="12:00", end_time="13:00"),
        status=SlotStatus.inactive,
    )
    stores.slots.add_many(
        [
            make_slot("slot-past", on_date=TODAY - timedelta(days=1)),
            inactive,
        ]
    )

    with pytest.raises(SlotNotFoundError):
        booking_service.book_slot("slot-404", customer)
    with pytest.raises(SlotUnavailableError) as past:
        booking_service.book_slot("slot-past", customer)
    with pytest.raises(SlotUnavailableError) as disabled:
        booking_service.book_slot("slot-inactive", customer)
    assert (past.value.reason, disabled.value.reason) == ("past", "inactive")


def test_booking_rules_enforce_notice_and_horizon(booking_service, availability, stores, customer):
    availability.create_template(
        "spec-1",
        {"monday": workday()},
        booking_rules=BookingRules(min_notice_hours=48, max_advance_days=30),
    )
    stores.slots.add_many(
        [
            make_slot("slot-soon", on_date=TODAY + timedelta(days=1)),
            make_slot("slot-far", on_date=TODAY + timedelta(days=60)),
        ]
    )

    with pytest.raises(SlotUnavailableError) as soon:
        booking_service.book_slot("slot-soon", customer)
    with pytest.raises(SlotUnavailableError) as far:
        booking_service.book_slot("slot-far", customer)
    assert (soon.value.reason, far.value.reason) == ("min_notice", "max_advance")


def test_concurrent_bookings_on_single_seat_have_one_winner(booking_service, stores):
    stores.slots.add_many([make_slot()])
    barrier = threading.Barrier(8)
    successes: list[str] = []
    failures: list[Exception] = []

    def worker(n: int) -> None:
        barrier.wait()
        try:
            successes.append(booking_service.book_slot("slot-1", _customer(n)).id)
        except SlotUnavailableError as e:
            failures.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    slot = stores.slots.get("slot-1")
    assert len(successes) == 1
    assert len(failures) == 7
    assert slot.booked_count == 1
    assert [entry.booking_id for entry in slot.bookings] == successes


def test_concurrent_bookings_never_exceed_capacity(booking_service, stores):
    stores.slots.add_many([make_slot(kind=SlotKind.webinar, capacity=3)])
    barrier = threading.Barrier(10)
    results: list[bool] = []

    def worker(n: int) -> None:
        barrier.wait()
        try:
            booking_service.book_slot("slot-1", _customer(n))
            results.append(True)
        except SlotUnavailableError:
            results.append(False)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    slot = stores.slots.get("slot-1")
    assert results.count(True) == slot.booked_count <= 3
    assert len(slot.bookings) == slot.booked_count


class _AlwaysContendedSlots(SlotRepository):
    def __init__(self, collection) -> None:
        super().__init__(collection)
        self.attempts = 0

    def compare_and_swap(self, slot_id, expected_version, updated) -> bool:
        self.attempts += 1
        return False


def test_lost_race_is_retried_once_then_reported_busy(stores, clock, customer):
    slots = _AlwaysContendedSlots(MemoryCollection("slots"))
    slots.add_many([make_slot()])
    service = BookingService(slots, stores.bookings, stores.templates, clock=clock)

    with pytest.raises(SlotUnavailableError) as exc_info:
        service.book_slot("slot-1", customer)
    assert exc_info.value.reason == "busy"
    assert slots.attempts == 2


class _InterleavingSlots(SlotRepository):
    """Runs `before_next_swap` just ahead of the next compare-and-swap, and can refuse swaps."""

    def __init__(self, collection) -> None:
        super().__init__(collection)
        self.before_next_swap = None
        self.refuse_swaps = 0

    def compare_and_swap(self, slot_id, expected_version, updated) -> bool:
        hook, self.before_next_swap = self.before_next_swap, None
        if hook is not None:
            hook()
        if self.refuse_swaps:
            self.refuse_swaps -= 1
            return False
        return super().compare_and_swap(slot_id, expected_version, updated)


class _ReschedulingMeetings(MockMeetingProvider):
    """Runs `during_next_call` while a meeting is being created."""

    def __init__(self) -> None:
        super().__init__()
        self.during_next_call = None

    def create_meeting(self, request):
        hook, self.during_next_call = self.during_next_call, None
        if hook is not None:
            hook()
        return super().create_meeting(request)


def test_entry_updates_racing_on_one_slot_both_land(stores, clock):
    slots = _InterleavingSlots(MemoryCollection("slots"))
    slots.add_many([make_slot(kind=SlotKind.webinar, capacity=2)])
    service = BookingService(slots, stores.bookings, stores.templates, clock=clock)
    first = service.book_slot("slot-1", _customer(1))
    second = service.book_slot("slot-1", _customer(2))
    service.confirm(first.id)
    service.confirm(second.id)

    # The second completion lands between the first one's read and its write
    slots.before_next_swap = lambda: service.complete(second.id)
    service.complete(first.id)

    entries = {entry.booking_id: entry.status for entry in slots.get("slot-1").bookings}
    assert entries == {first.id: SlotBookingStatus.completed, second.id: SlotBookingStatus.completed}
    assert stores.bookings.get(second.id).status == BookingStatus.completed


def test_late_meeting_does_not_undo_reschedule(stores, clock, customer):
    meetings = _ReschedulingMeetings()
    service = BookingService(stores.slots, stores.bookings, stores.templates, meetings=meetings, clock=clock)
    stores.slots.add_many([make_slot(), make_slot("slot-2", start_time="12:00", end_time="13:00")])
    booking = service.book_slot("slot-1", customer)
    meetings.during_next_call = lambda: service.reschedule(booking.id, "slot-2", "spec-1")

    outcome = service.confirm(booking.id)

    stored = stores.bookings.get(booking.id)
    assert stored.slot_id == outcome.booking.slot_id == "slot-2"
    assert stored.status == BookingStatus.confirmed
    # Only the meeting created for the new slot is kept
    assert meetings.requests[0].start_time.hour == 12
    assert stored.meeting.meeting_id == "mock_meeting_1"
    assert stores.slots.get("slot-1").status == SlotStatus.available


def test_cancel_on_contended_slot_is_flagged_then_repaired(stores, clock, customer):
    slots = _InterleavingSlots(MemoryCollection("slots"))
    slots.add_many([make_slot()])
    service = BookingService(slots, stores.bookings, stores.templates, clock=clock)
    booking = service.book_slot("slot-1", customer)

    slots.refuse_swaps = 2
    cancelled = service.cancel(booking.id, "spec-1", SPECIALIST_ROLE)

    assert cancelled.status == BookingStatus.cancelled
    assert cancelled.warnings == (f"{SLOT_RELEASE_PENDING}:slot-1",)
    assert slots.get("slot-1").booked_count == 1

    repaired = service.repair_release(booking.id)

    assert repaired.warnings == ()
    assert stores.bookings.get(booking.id).warnings == ()
    slot = slots.get("slot-1")
    assert (slot.booked_count, slot.status) == (0, SlotStatus.available)
    assert slot.bookings[0].status == SlotBookingStatus.cancelled_by_specialist


def test_confirm_attaches_meeting_and_notifies(booking_service, stores, meetings, notifier, customer):
    stores.slots.add_many([make_slot()])
    booking = booking_service.book_slot("slot-1", customer)

    outcome = booking_service.confirm(booking.id, "spec-1")

    assert outcome.degraded is False
    assert outcome.booking.status == BookingStatus.confirmed
    assert outcome.booking.meeting.join_url.startswith("https://meet.example.com/")
    assert stores.bookings.get(booking.id).meeting == outcome.booking.meeting
    assert stores.slots.get("slot-1").bookings[0].meeting == outcome.booking.meeting
    assert meetings.requests[0].participant_email == customer.email
    assert notifier.kinds() == [NotificationKind.booking_confirmed]


def test_meeting_failure_degrades_but_keeps_confirmation(stores, clock, notifier, customer):
    service = BookingService(
        stores.slots,
        stores.bookings,
        stores.templates,
        meetings=MockMeetingProvider(fail=True),
        notifier=notifier,
        dispatcher=InlineTaskDispatcher(),
        clock=clock,
    )
    stores.slots.add_many([make_slot()])
    booking = service.book_slot("slot-1", customer)

    outcome = service.confirm(booking.id)

    stored = stores.bookings.get(booking.id)
    assert outcome.degraded is True
    assert stored.status == BookingStatus.confirmed
    assert stored.setup_incomplete is True
    assert stored.warnings[0].startswith("Meeting setup failed")


def test_cancel_releases_seat(booking_service, stores, notifier, customer):
    stores.slots.add_many([make_slot()])
    booking = booking_service.book_slot("slot-1", customer)

    cancelled = booking_service.cancel(booking.id, customer.customer_id, reason="changed plans")

    slot = stores.slots.get("slot-1")
    assert cancelled.status == BookingStatus.cancelled
    assert cancelled.cancellation.actor_role == "customer"
    assert (slot.status, slot.booked_count) == (SlotStatus.available, 0)
    assert slot.bookings[0].status == SlotBookingStatus.cancelled_by_customer
    assert NotificationKind.booking_cancelled in notifier.kinds()

    # the seat can be taken again
    assert booking_service.book_slot("slot-1", CustomerInfo("cust-2", "b@example.com")).status == BookingStatus.pending


def test_customer_cannot_cancel_after_deadline(booking_service, availability, stores, clock, customer):
    availability.create_template(
        "spec-1",
        {"thursday": workday()},
        booking_rules=BookingRules(min_notice_hours=0, cancellation_deadline_hours=24),
    )
    stores.slots.add_many([make_slot()])
    booking = booking_service.book_slot("slot-1", customer)
    clock.advance(days=2, hours=12)

    with pytest.raises(BookingRuleViolationError):
        booking_service.cancel(booking.id, customer.customer_id)

    # the specialist is not bound by the deadline
    cancelled = booking_service.cancel(booking.id, "spec-1", SPECIALIST_ROLE)
    assert stores.slots.get("slot-1").bookings[0].status == SlotBookingStatus.cancelled_by_specialist
    assert cancelled.status == BookingStatus.cancelled


def test_transition_table_is_enforced(booking_service, stores, customer):
    stores.slots.add_many([make_slot()])
    booking = booking_service.book_slot("slot-1", customer)

    with pytest.raises(InvalidTransitionError):
        booking_service.complete(booking.id)

    booking_service.confirm(booking.id)
    completed = booking_service.complete(booking.id)
    assert completed.status == BookingStatus.completed
    assert [change.status for change in completed.status_history] == [
        BookingStatus.pending,
        BookingStatus.confirmed,
        BookingStatus.completed,
    ]
    assert stores.slots.get("slot-1").bookings[0].status == SlotBookingStatus.completed

    with pytest.raises(InvalidTransitionError):
        booking_service.cancel(booking.id, "spec-1", SPECIALIST_ROLE)
    with pytest.raises(BookingNotFoundError):
        booking_service.confirm("missing")


def test_no_show_only_from_confirmed(booking_service, stores, customer):
    stores.slots.add_many([make_slot()])
    booking = booking_service.book_slot("slot-1", customer)
    with pytest.raises(InvalidTransitionError):
        booking_service.mark_no_show(booking.id)

    booking_service.confirm(booking.id)
    assert booking_service.mark_no_show(booking.id, "spec-1").status == BookingStatus.no_show


def test_reschedule_moves_booking_between_slots(booking_service, stores, meetings, customer):
    stores.slots.add_many([make_slot("slot-a"), make_slot("slot-b", start_time="14:00", end_time="15:00")])
    booking = booking_service.book_slot("slot-a", customer)
    booking_service.confirm(booking.id)

    outcome = booking_service.reschedule(booking.id, "slot-b", customer.customer_id, reason="conflict")

    assert outcome.booking.slot_id == "slot-b"
    assert outcome.booking.status == BookingStatus.confirmed
    assert outcome.booking.reschedule_history[0].from_slot_id == "slot-a"
    assert outcome.booking.meeting is not None
    assert len(meetings.requests) == 2
    assert stores.slots.get("slot-a").status == SlotStatus.available
    assert stores.slots.get("slot-b").status == SlotStatus.booked


def test_reschedule_rejects_bad_targets(booking_service, stores, customer):
    stores.slots.add_many(
        [
            make_slot("slot-a"),
            make_slot("slot-taken", start_time="12:00", end_time="13:00"),
            make_slot("slot-other", specialist_id="spec-2"),
        ]
    )
    booking = booking_service.book_slot("slot-a", customer)
    booking_service.book_slot("slot-taken", CustomerInfo("cust-2", "b@example.com"))

    with pytest.raises(SlotUnavailableError) as same:
        booking_service.reschedule(booking.id, "slot-a", customer.customer_id)
    with pytest.raises(SlotUnavailableError) as other:
        booking_service.reschedule(booking.id, "slot-other", customer.customer_id)
    with pytest.raises(SlotUnavailableError) as taken:
        booking_service.reschedule(booking.id, "slot-taken", customer.customer_id)

    assert (same.value.reason, other.value.reason, taken.value.reason) == ("same_slot", "different_specialist", "booked")
    assert stores.bookings.get(booking.id).slot_id == "slot-a"
    assert stores.slots.get("slot-a").status == SlotStatus.booked
