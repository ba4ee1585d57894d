from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from marketplace.application.exceptions import (
    BookingMismatchError,
    BookingNotFoundError,
    DuplicateEnrollmentError,
    GatewayError,
    InvalidTransitionError,
    OfferingNotFoundError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    PaymentStateError,
    RefundNotAllowedError,
)
from marketplace.application.ports.enrollment_store import EnrollmentStorePort
from marketplace.application.ports.notifier import NotificationKind, NotifierPort
from marketplace.application.ports.offering_catalog import OfferingCatalogPort
from marketplace.application.ports.payment_gateway import PaymentGatewayPort
from marketplace.application.ports.payment_store import PaymentStorePort
from marketplace.application.ports.task_dispatcher import TaskDispatcherPort
from marketplace.application.use_cases.booking import SPECIALIST_ROLE, SYSTEM_ROLE, BookingOutcome, BookingService
from marketplace.application.use_cases.commission import CommissionService
from marketplace.domain.entities.booking import Booking, BookingStatus, CustomerInfo
from marketplace.domain.entities.enrollment import Enrollment, EnrollmentPaymentStatus, EnrollmentStatus
from marketplace.domain.entities.offering import Offering
from marketplace.domain.entities.payment import Payment, PaymentStatus, SettlementEvent, SettlementOutcome


class ReconcileStatus(str, Enum):
    processed = "processed"
    duplicate = "duplicate"
    unknown_intent = "unknown_intent"
    ignored = "ignored"
    pending = "pending"


@dataclass(frozen=True)
class IntentResult:
    payment: Payment | None
    enrollment: Enrollment | None = None
    client_secret: str | None = None
    reused: bool = False
    free: bool = False
    booking_outcome: BookingOutcome | None = None


@dataclass(frozen=True)
class ReconcileResult:
    status: ReconcileStatus
    payment: Payment | None = None
    enrollment: Enrollment | None = None
    booking: Booking | None = None


class PaymentOrchestrator:
    def __init__(
        self,
        payments: PaymentStorePort,
        enrollments: EnrollmentStorePort,
        catalog: OfferingCatalogPort,
        gateway: PaymentGatewayPort,
        commission: CommissionService,
        bookings: BookingService,
        notifier: NotifierPort | None = None,
        dispatcher: TaskDispatcherPort | None = None,
        clock: Callable[[], datetime] | None = None,
        dedupe_window_minutes: int = 10,
    ) -> None:
        self._payments = payments
        self._enrollments = enrollments
        self._catalog = catalog
        self._gateway = gateway
        self._commission = commission
        self._bookings = bookings
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._dedupe_window = timedelta(minutes=dedupe_window_minutes)
        self._logger = logging.getLogger(__name__)

    def get_payment(self, payment_id: str) -> Payment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
        return payment

    def list_for_specialist(self, specialist_id: str, status: PaymentStatus | None = None) -> list[Payment]:
        return self._payments.list_for_specialist(specialist_id, status)

    def create_intent(
        self,
        customer: CustomerInfo,
        offering_id: str,
        booking_id: str | None = None,
    ) -> IntentResult:
        offering = self._catalog.get_offering(offering_id)
        if offering is None:
            raise OfferingNotFoundError(f"Offering {offering_id} not found", offering_id=offering_id)
        if booking_id:
            self._check_booking(booking_id, customer, offering)

        now = self._clock()
        recent = self._payments.find_recent(
            customer.customer_id,
            offering.id,
            (PaymentStatus.pending, PaymentStatus.completed),
            now - self._dedupe_window,
        )
        if recent is not None:
            if recent.status == PaymentStatus.completed:
                raise DuplicateEnrollmentError(
                    "Customer has already paid for this offering",
                    customer_id=customer.customer_id,
                    offering_id=offering.id,
                    payment_id=recent.id,
                )
            self._logger.info(
                "Reusing pending payment",
                extra={"payment_id": recent.id, "customer_id": customer.customer_id, "offering_id": offering.id},
            )
            return IntentResult(payment=recent, client_secret=recent.client_secret, reused=True)

        if offering.is_free:
            return self._enroll_free(customer, offering, booking_id, now)

        gateway_customer = self._gateway.create_customer(
            customer.email,
            customer.name,
            metadata={"customer_id": customer.customer_id},
        )
        if not gateway_customer.success:
            raise GatewayError(
                gateway_customer.error or "Could not create gateway customer",
                code=gateway_customer.code,
                customer_id=customer.customer_id,
            )
        customer_handle = gateway_customer.data["customer_id"]

        metadata = {
            "customer_id": customer.customer_id,
            "offering_id": offering.id,
            "specialist_id": offering.specialist_id,
            "service_type": offering.service_type.value,
        }
        if booking_id:
            metadata["booking_id"] = booking_id
        intent = self._gateway.create_intent(
            amount=offering.price,
            currency=offering.currency,
            customer_handle=customer_handle,
            metadata=metadata,
            description=offering.title,
        )
        if not intent.success:
            raise GatewayError(
                intent.error or "Could not create payment intent",
                code=intent.code,
                offering_id=offering.id,
            )

        breakdown = self._commission.calculate(offering.price, offering.service_type)
        payment = Payment(
            id=uuid.uuid4().hex,
            idempotency_key=f"{customer.customer_id}-{offering.id}-{uuid.uuid4().hex}",
            customer_id=customer.customer_id,
            specialist_id=offering.specialist_id,
            offering_id=offering.id,
            amount=offering.price,
            currency=offering.currency,
            service_type=offering.service_type,
            commission_percentage=breakdown.percentage,
            commission_amount=breakdown.platform_commission,
            specialist_earnings=breakdown.specialist_earnings,
            status=PaymentStatus.pending,
            external_intent_id=intent.data["intent_id"],
            client_secret=intent.data.get("client_secret"),
            external_customer_id=customer_handle,
            customer_email=customer.email,
            offering_title=offering.title,
            booking_id=booking_id,
            created_at=now,
            updated_at=now,
        )
        self._payments.add(payment)
        self._logger.info(
            "Payment intent created",
            extra={
                "payment_id": payment.id,
                "intent_id": payment.external_intent_id,
                "amount": payment.amount,
                "commission_amount": payment.commission_amount,
            },
        )
        return IntentResult(payment=payment, client_secret=payment.client_secret)

    def reconcile(self, event: SettlementEvent) -> ReconcileResult:
        """
        Apply one gateway settlement notification. Safe to call any number of
        times with the same event: only the first delivery changes state.
        """
        if self._payments.find_by_event_id(event.event_id) is not None:
            self._logger.info("Duplicate settlement event", extra={"event_id": event.event_id})
            return ReconcileResult(status=ReconcileStatus.duplicate)

        payment = self._payments.find_by_intent_id(event.intent_id)
        if payment is None:
            self._logger.warning(
                "Settlement event for unknown intent",
                extra={"event_id": event.event_id, "intent_id": event.intent_id, "event_type": event.event_type},
            )
            return ReconcileResult(status=ReconcileStatus.unknown_intent)

        if event.outcome == SettlementOutcome.succeeded:
            return self._settle_succeeded(payment, event)
        if event.outcome == SettlementOutcome.failed:
            return self._settle_failed(payment, event)
        if event.outcome == SettlementOutcome.refunded:
            return self._settle_refunded(payment, event)

        self._logger.warning(
            "Payment disputed",
            extra={"payment_id": payment.id, "event_id": event.event_id, "intent_id": event.intent_id},
        )
        return ReconcileResult(status=ReconcileStatus.ignored, payment=payment)

    def confirm_payment(self, intent_id: str, customer_id: str) -> ReconcileResult:
        """
        Client-side confirmation after the payment sheet closes. The gateway is
        asked for the intent status; a succeeded intent settles exactly like the
        webhook would, anything else leaves the payment for the webhook to decide.
        """
        payment = self._payments.find_by_intent_id(intent_id)
        if payment is None:
            raise PaymentNotFoundError(f"No payment for intent {intent_id}", intent_id=intent_id)
        if payment.customer_id != customer_id:
            raise PaymentAccessDeniedError(
                "Payment belongs to another customer", payment_id=payment.id, customer_id=customer_id
            )
        if payment.status != PaymentStatus.pending:
            return ReconcileResult(status=ReconcileStatus.duplicate, payment=payment)

        remote = self._gateway.retrieve_intent(intent_id)
        if not remote.success:
            raise GatewayError(remote.error or "Could not retrieve payment intent", code=remote.code, intent_id=intent_id)

        status = remote.data.get("status")
        if status != "succeeded":
            self._logger.info(
                "Payment not settled yet",
                extra={"payment_id": payment.id, "intent_id": intent_id, "status": status},
            )
            return ReconcileResult(status=ReconcileStatus.pending, payment=payment)

        event = SettlementEvent(
            event_id=f"client_confirm:{intent_id}",
            event_type="client.confirm",
            intent_id=intent_id,
            outcome=SettlementOutcome.succeeded,
            amount=remote.data.get("amount"),
        )
        return self._settle_succeeded(payment, event)

    def refund(
        self,
        payment_id: str,
        actor_id: str,
        reason: str | None = None,
        amount: int | None = None,
    ) -> Payment:
        payment = self.get_payment(payment_id)
        if actor_id != payment.specialist_id:
            raise RefundNotAllowedError(
                "Only the specialist who was paid can refund", payment_id=payment_id, actor_id=actor_id
            )
        if payment.status != PaymentStatus.completed:
            raise PaymentStateError(
                f"Cannot refund a {payment.status.value} payment", payment_id=payment_id
            )
        if amount is not None and (amount <= 0 or amount > payment.amount):
            raise PaymentStateError(
                f"Refund amount must be between 1 and {payment.amount}", payment_id=payment_id, amount=amount
            )

        result = self._gateway.refund(payment.external_intent_id, amount=amount, reason=reason)
        if not result.success:
            raise GatewayError(result.error or "Refund failed", code=result.code, payment_id=payment_id)

        now = self._clock()
        refunded = replace(
            payment,
            status=PaymentStatus.refunded,
            refund_id=result.data.get("refund_id"),
            refunded_amount=result.data.get("amount") or amount or payment.amount,
            refund_reason=reason,
            refunded_at=now,
            updated_at=now,
        )
        if not self._payments.compare_and_swap(payment.id, PaymentStatus.completed, refunded):
            raise PaymentStateError("Payment changed while refunding", payment_id=payment_id)

        self._refund_enrollment(refunded, now)
        if refunded.booking_id:
            self._cancel_booking(refunded.booking_id, actor_id, SPECIALIST_ROLE, reason or "refunded")

        self._logger.info(
            "Payment refunded",
            extra={"payment_id": payment.id, "refund_id": refunded.refund_id, "amount": refunded.refunded_amount},
        )
        offering = self._catalog.get_offering(payment.offering_id)
        for recipient in (refunded.customer_email, offering.specialist_email if offering else None):
            if recipient:
                self._notify(
                    NotificationKind.refund_processed,
                    {
                        "recipient": recipient,
                        "payment_id": refunded.id,
                        "offering_title": refunded.offering_title,
                        "amount": refunded.refunded_amount,
                        "currency": refunded.currency,
                        "reason": reason,
                    },
                )
        return refunded

    def _check_booking(self, booking_id: str, customer: CustomerInfo, offering: Offering) -> None:
        """The booking a payment settles must be a live booking of this customer for this offering."""
        booking = self._bookings.get_booking(booking_id)
        if booking.customer_id != customer.customer_id or booking.offering_id != offering.id:
            self._logger.warning(
                "Payment requested for a booking of another customer or offering",
                extra={"booking_id": booking_id, "customer_id": customer.customer_id, "offering_id": offering.id},
            )
            raise BookingMismatchError(
                "Booking does not belong to this customer and offering",
                booking_id=booking_id,
                customer_id=customer.customer_id,
                offering_id=offering.id,
            )
        if not booking.is_live:
            raise InvalidTransitionError(
                f"Cannot pay for a {booking.status.value} booking", booking_id=booking_id
            )

    def _enroll_free(
        self,
        customer: CustomerInfo,
        offering: Offering,
        booking_id: str | None,
        now: datetime,
    ) -> IntentResult:
        outcome = self._bookings.confirm(booking_id, customer.customer_id) if booking_id else None
        enrollment = self._enrollments.upsert(
            Enrollment(
                id=uuid.uuid4().hex,
                customer_id=customer.customer_id,
                specialist_id=offering.specialist_id,
                offering_id=offering.id,
                customer_email=customer.email,
                booking_id=booking_id,
                status=EnrollmentStatus.active,
                payment_status=EnrollmentPaymentStatus.completed,
                paid_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        self._logger.info(
            "Free enrollment activated",
            extra={"enrollment_id": enrollment.id, "customer_id": customer.customer_id, "offering_id": offering.id},
        )
        self._notify_enrolled(enrollment, offering, customer.email, customer.name)
        return IntentResult(payment=None, enrollment=enrollment, free=True, booking_outcome=outcome)

    def _settle_succeeded(self, payment: Payment, event: SettlementEvent) -> ReconcileResult:
        now = self._clock()
        completed = replace(
            payment,
            status=PaymentStatus.completed,
            external_event_id=event.event_id,
            settled_at=now,
            updated_at=now,
        )
        if payment.status != PaymentStatus.pending or not self._payments.claim_event(
            payment.id, event.event_id, completed
        ):
            self._logger.info(
                "Settlement already applied",
                extra={"payment_id": payment.id, "event_id": event.event_id, "status": payment.status.value},
            )
            return ReconcileResult(status=ReconcileStatus.duplicate, payment=payment)

        existing = self._enrollments.find(payment.customer_id, payment.offering_id)
        base = existing or Enrollment(
            id=uuid.uuid4().hex,
            customer_id=payment.customer_id,
            specialist_id=payment.specialist_id,
            offering_id=payment.offering_id,
            created_at=now,
        )
        enrollment = self._enrollments.upsert(
            replace(
                base,
                customer_email=payment.customer_email or base.customer_email,
                booking_id=payment.booking_id or base.booking_id,
                status=EnrollmentStatus.active,
                payment_status=EnrollmentPaymentStatus.completed,
                payment_id=payment.id,
                paid_at=now,
                refunded_at=None,
                webhook_verified=True,
                updated_at=now,
            )
        )

        booking = None
        if payment.booking_id:
            booking = self._confirm_booking(payment.booking_id)

        self._logger.info(
            "Payment completed",
            extra={"payment_id": payment.id, "event_id": event.event_id, "enrollment_id": enrollment.id},
        )
        offering = self._catalog.get_offering(payment.offering_id)
        self._notify_enrolled(enrollment, offering, payment.customer_email, None, payment)
        return ReconcileResult(
            status=ReconcileStatus.processed,
            payment=completed,
            enrollment=enrollment,
            booking=booking,
        )

    def _settle_failed(self, payment: Payment, event: SettlementEvent) -> ReconcileResult:
        now = self._clock()
        failed = replace(
            payment,
            status=PaymentStatus.failed,
            external_event_id=event.event_id,
            failure_code=event.failure_code,
            failure_message=event.failure_message,
            failed_at=now,
            updated_at=now,
        )
        if payment.status != PaymentStatus.pending or not self._payments.claim_event(
            payment.id, event.event_id, failed
        ):
            return ReconcileResult(status=ReconcileStatus.duplicate, payment=payment)

        booking = None
        if payment.booking_id:
            booking = self._cancel_booking(payment.booking_id, SYSTEM_ROLE, SYSTEM_ROLE, "payment_failed")

        self._logger.warning(
            "Payment failed",
            extra={
                "payment_id": payment.id,
                "event_id": event.event_id,
                "failure_code": event.failure_code,
            },
        )
        if payment.customer_email:
            self._notify(
                NotificationKind.payment_failed,
                {
                    "recipient": payment.customer_email,
                    "payment_id": payment.id,
                    "offering_title": payment.offering_title,
                    "failure_message": event.failure_message,
                },
            )
        return ReconcileResult(status=ReconcileStatus.processed, payment=failed, booking=booking)

    def _settle_refunded(self, payment: Payment, event: SettlementEvent) -> ReconcileResult:
        if payment.status == PaymentStatus.refunded:
            return ReconcileResult(status=ReconcileStatus.duplicate, payment=payment)
        if payment.status != PaymentStatus.completed:
            self._logger.warning(
                "Refund event for a payment that never completed",
                extra={"payment_id": payment.id, "event_id": event.event_id, "status": payment.status.value},
            )
            return ReconcileResult(status=ReconcileStatus.ignored, payment=payment)

        now = self._clock()
        refunded = replace(
            payment,
            status=PaymentStatus.refunded,
            refunded_amount=event.amount or payment.amount,
            refunded_at=now,
            updated_at=now,
        )
        if not self._payments.compare_and_swap(payment.id, PaymentStatus.completed, refunded):
            return ReconcileResult(status=ReconcileStatus.duplicate, payment=payment)

        enrollment = self._refund_enrollment(refunded, now)
        self._logger.info(
            "Gateway refund recorded",
            extra={"payment_id": payment.id, "event_id": event.event_id, "amount": refunded.refunded_amount},
        )
        return ReconcileResult(status=ReconcileStatus.processed, payment=refunded, enrollment=enrollment)

    def _refund_enrollment(self, payment: Payment, now: datetime) -> Enrollment | None:
        enrollment = self._enrollments.find_by_payment(payment.id) or self._enrollments.find(
            payment.customer_id, payment.offering_id
        )
        if enrollment is None:
            return None
        return self._enrollments.upsert(
            replace(
                enrollment,
                status=EnrollmentStatus.refunded,
                payment_status=EnrollmentPaymentStatus.refunded,
                refunded_at=now,
                updated_at=now,
            )
        )

    def _confirm_booking(self, booking_id: str) -> Booking | None:
        try:
            return self._bookings.confirm(booking_id, SYSTEM_ROLE).booking
        except (BookingNotFoundError, InvalidTransitionError) as e:
            self._logger.warning(
                "Paid booking could not be confirmed",
                extra={"booking_id": booking_id, "error": str(e)},
            )
            return None

    def _cancel_booking(self, booking_id: str, actor_id: str, actor_role: str, reason: str) -> Booking | None:
        try:
            booking = self._bookings.get_booking(booking_id)
            if booking.status not in (BookingStatus.pending, BookingStatus.confirmed):
                return booking
            return self._bookings.cancel(booking_id, actor_id, actor_role, reason)
        except (BookingNotFoundError, InvalidTransitionError) as e:
            self._logger.warning(
                "Booking could not be cancelled",
                extra={"booking_id": booking_id, "error": str(e)},
            )
            return None

    def _notify_enrolled(
        self,
        enrollment: Enrollment,
        offering: Offering | None,
        customer_email: str | None,
        customer_name: str | None,
        payment: Payment | None = None,
    ) -> None:
        title = offering.title if offering else (payment.offering_title if payment else None)
        if customer_email:
            self._notify(
                NotificationKind.enrollment_confirmed,
                {
                    "recipient": customer_email,
                    "enrollment_id": enrollment.id,
                    "offering_title": title,
                    "amount": payment.amount if payment else 0,
                },
            )
        if offering and offering.specialist_email:
            self._notify(
                NotificationKind.specialist_new_enrollment,
                {
                    "recipient": offering.specialist_email,
                    "enrollment_id": enrollment.id,
                    "offering_title": title,
                    "customer_name": customer_name or customer_email,
                    "specialist_earnings": payment.specialist_earnings if payment else 0,
                },
            )

    def _notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        if self._notifier is None or self._dispatcher is None:
            return
        self._dispatcher.dispatch(kind.value, self._notifier.notify, kind, payload)
