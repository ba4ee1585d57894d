from fastapi import APIRouter, Depends

from marketplace.api.v1.schemas import (
    ActorRequestSchema,
    BookingRequestSchema,
    BookingResponseSchema,
    CancelRequestSchema,
    CheckoutResponseSchema,
    RescheduleRequestSchema,
)
from marketplace.application.use_cases.booking import BookingOutcome, BookingService
from marketplace.application.use_cases.checkout import CheckoutUseCase
from marketplace.domain.entities.booking import Booking
from marketplace.wiring.dependencies import get_booking_service, get_checkout_use_case

router = APIRouter(prefix="/v1/bookings")


def outcome_response(outcome: BookingOutcome) -> BookingResponseSchema:
    return BookingResponseSchema(
        booking=outcome.booking,
        slot=outcome.slot,
        degraded=outcome.degraded,
        warnings=list(outcome.warnings),
    )


@router.post("", response_model=CheckoutResponseSchema, status_code=201)
def book(
    req: BookingRequestSchema,
    checkout: CheckoutUseCase = Depends(get_checkout_use_case),
):
    result = checkout.book(req.slot_id, req.customer.to_domain(), req.offering_id)
    intent = result.intent
    return CheckoutResponseSchema(
        booking=result.booking,
        requires_payment=result.requires_payment,
        payment=intent.payment if intent else None,
        client_secret=intent.client_secret if intent else None,
        enrollment=intent.enrollment if intent else None,
        reused=intent.reused if intent else False,
        degraded=result.outcome.degraded if result.outcome else False,
        warnings=list(result.outcome.warnings) if result.outcome else [],
    )


@router.get("/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, service: BookingService = Depends(get_booking_service)):
    return service.get_booking(booking_id)


@router.get("/customers/{customer_id}", response_model=list[Booking])
def list_customer_bookings(customer_id: str, service: BookingService = Depends(get_booking_service)):
    return service.list_for_customer(customer_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponseSchema)
def confirm(
    booking_id: str,
    req: ActorRequestSchema | None = None,
    service: BookingService = Depends(get_booking_service),
):
    return outcome_response(service.confirm(booking_id, req.actor_id if req else None))


@router.post("/{booking_id}/cancel", response_model=Booking)
def cancel(
    booking_id: str,
    req: CancelRequestSchema,
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel(booking_id, req.actor_id, req.actor_role, req.reason)


@router.post("/{booking_id}/complete", response_model=Booking)
def complete(
    booking_id: str,
    req: ActorRequestSchema | None = None,
    service: BookingService = Depends(get_booking_service),
):
    return service.complete(booking_id, req.actor_id if req else None)


@router.post("/{booking_id}/no-show", response_model=Booking)
def mark_no_show(
    booking_id: str,
    req: ActorRequestSchema | None = None,
    service: BookingService = Depends(get_booking_service),
):
    return service.mark_no_show(booking_id, req.actor_id if req else None, req.reason if req else None)


@router.post("/{booking_id}/reschedule", response_model=BookingResponseSchema)
def reschedule(
    booking_id: str,
    req: RescheduleRequestSchema,
    service: BookingService = Depends(get_booking_service),
):
    return outcome_response(service.reschedule(booking_id, req.to_slot_id, req.actor_id, req.reason))
