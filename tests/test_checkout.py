"""
Booking a slot and handing over to payment in one step.
"""

from __future__ import annotations

import pytest

from marketplace.application.exceptions import DuplicateEnrollmentError, GatewayError, OfferingNotFoundError
from marketplace.domain.entities.booking import BookingStatus, CustomerInfo
from marketplace.domain.entities.commission import ServiceType
from marketplace.domain.entities.slot import SlotKind, SlotStatus

from tests.factories import make_offering, make_slot


def test_paid_checkout_returns_pending_booking_and_intent(checkout, stores, customer):
    stores.offerings.save_offering(make_offering())
    stores.slots.add_many([make_slot()])

    result = checkout.book("slot-1", customer)

    assert result.requires_payment is True
    assert result.booking.status == BookingStatus.pending
    assert result.intent.payment.booking_id == result.booking.id
    assert result.intent.client_secret


def test_free_checkout_confirms_immediately(checkout, stores, gateway, customer):
    stores.offerings.save_offering(make_offering(price=0))
    stores.slots.add_many([make_slot()])

    result = checkout.book("slot-1", customer)

    assert result.requires_payment is False
    assert result.booking.status == BookingStatus.confirmed
    assert result.intent.enrollment.booking_id == result.booking.id
    assert gateway.calls == []


def test_gateway_failure_releases_the_seat(checkout, stores, gateway, customer):
    stores.offerings.save_offering(make_offering())
    stores.slots.add_many([make_slot()])
    gateway.fail_on.add("create_customer")

    with pytest.raises(GatewayError):
        checkout.book("slot-1", customer)

    slot = stores.slots.get("slot-1")
    assert (slot.status, slot.booked_count) == (SlotStatus.available, 0)
    assert [b.status for b in stores.bookings.list_for_customer(customer.customer_id)] == [BookingStatus.cancelled]


def test_slot_without_known_offering_is_released(checkout, stores, customer):
    stores.slots.add_many([make_slot(offering_id="ghost")])

    with pytest.raises(OfferingNotFoundError):
        checkout.book("slot-1", customer)
    assert stores.slots.get("slot-1").status == SlotStatus.available


def test_second_seat_while_checkout_in_progress_is_refused(checkout, stores):
    stores.offerings.save_offering(make_offering(service_type=ServiceType.webinar))
    stores.slots.add_many(
        [
            make_slot("slot-a", kind=SlotKind.webinar, capacity=10),
            make_slot("slot-b", kind=SlotKind.webinar, capacity=10, start_time="15:00", end_time="16:00"),
        ]
    )
    buyer = CustomerInfo("cust-9", "nine@example.com")
    checkout.book("slot-a", buyer)

    with pytest.raises(DuplicateEnrollmentError):
        checkout.book("slot-b", buyer)
    assert stores.slots.get("slot-b").booked_count == 0
