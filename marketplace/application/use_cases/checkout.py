from __future__ import annotations

import logging
from dataclasses import dataclass

from marketplace.application.exceptions import DuplicateEnrollmentError, MarketplaceError, OfferingNotFoundError
from marketplace.application.ports.offering_catalog import OfferingCatalogPort
from marketplace.application.use_cases.booking import SYSTEM_ROLE, BookingOutcome, BookingService
from marketplace.application.use_cases.payments import IntentResult, PaymentOrchestrator
from marketplace.domain.entities.booking import Booking, CustomerInfo


@dataclass(frozen=True)
class CheckoutResult:
    booking: Booking
    intent: IntentResult | None = None
    outcome: BookingOutcome | None = None

    @property
    def requires_payment(self) -> bool:
        return self.intent is not None and self.intent.payment is not None


class CheckoutUseCase:
    """Reserve a slot and hand the customer over to payment, or straight to confirmation when free."""

    def __init__(
        self,
        bookings: BookingService,
        payments: PaymentOrchestrator,
        catalog: OfferingCatalogPort,
    ) -> None:
        self._bookings = bookings
        self._payments = payments
        self._catalog = catalog
        self._logger = logging.getLogger(__name__)

    def book(self, slot_id: str, customer: CustomerInfo, offering_id: str | None = None) -> CheckoutResult:
        booking = self._bookings.book_slot(slot_id, customer, offering_id)

        target_offering = booking.offering_id
        offering = self._catalog.get_offering(target_offering) if target_offering else None
        if offering is None:
            self._abandon(booking, "offering_missing")
            raise OfferingNotFoundError(
                f"Slot {slot_id} is not linked to a known offering", slot_id=slot_id, offering_id=target_offering
            )

        try:
            intent = self._payments.create_intent(customer, offering.id, booking_id=booking.id)
        except MarketplaceError:
            self._abandon(booking, "checkout_failed")
            raise

        if intent.reused and intent.payment and intent.payment.booking_id not in (None, booking.id):
            self._abandon(booking, "checkout_in_progress")
            raise DuplicateEnrollmentError(
                "A checkout for this offering is already in progress",
                payment_id=intent.payment.id,
                booking_id=intent.payment.booking_id,
            )

        if intent.free:
            outcome = intent.booking_outcome
            return CheckoutResult(booking=outcome.booking if outcome else booking, intent=intent, outcome=outcome)
        return CheckoutResult(booking=booking, intent=intent)

    def _abandon(self, booking: Booking, reason: str) -> None:
        self._logger.info("Releasing booking after failed checkout", extra={"booking_id": booking.id, "reason": reason})
        self._bookings.cancel(booking.id, SYSTEM_ROLE, SYSTEM_ROLE, reason)
