from fastapi import APIRouter, Depends

from marketplace.api.v1.schemas import (
    ConfirmPaymentSchema,
    IntentRequestSchema,
    IntentResponseSchema,
    ReconcileResponseSchema,
    RefundRequestSchema,
)
from marketplace.application.use_cases.payments import PaymentOrchestrator
from marketplace.domain.entities.payment import Payment, PaymentStatus
from marketplace.wiring.dependencies import get_payment_orchestrator

router = APIRouter(prefix="/v1/payments")


@router.post("/intents", response_model=IntentResponseSchema, status_code=201)
def create_intent(
    req: IntentRequestSchema,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    result = orchestrator.create_intent(req.customer.to_domain(), req.offering_id, req.booking_id)
    return IntentResponseSchema(
        payment=result.payment,
        client_secret=result.client_secret,
        enrollment=result.enrollment,
        reused=result.reused,
        free=result.free,
    )


@router.get("/specialists/{specialist_id}", response_model=list[Payment])
def list_specialist_payments(
    specialist_id: str,
    status: PaymentStatus | None = None,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return orchestrator.list_for_specialist(specialist_id, status)


@router.get("/{payment_id}", response_model=Payment)
def get_payment(payment_id: str, orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator)):
    return orchestrator.get_payment(payment_id)


@router.post("/{payment_id}/refund", response_model=Payment)
def refund(
    payment_id: str,
    req: RefundRequestSchema,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    return orchestrator.refund(payment_id, req.actor_id, reason=req.reason, amount=req.amount)


@router.post("/confirm", response_model=ReconcileResponseSchema)
def confirm_payment(
    req: ConfirmPaymentSchema,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    result = orchestrator.confirm_payment(req.intent_id, req.customer_id)
    return ReconcileResponseSchema(
        status=result.status.value,
        payment=result.payment,
        enrollment=result.enrollment,
        booking=result.booking,
    )
