from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from marketplace.domain.entities.commission import ServiceType


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class SettlementOutcome(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    refunded = "refunded"
    disputed = "disputed"


@dataclass(frozen=True)
class Payment:
    id: str
    idempotency_key: str
    customer_id: str
    specialist_id: str
    offering_id: str
    amount: int  # minor units
    currency: str
    service_type: ServiceType
    commission_percentage: float
    commission_amount: int
    specialist_earnings: int
    status: PaymentStatus = PaymentStatus.pending
    external_intent_id: str | None = None
    client_secret: str | None = None
    external_customer_id: str | None = None
    customer_email: str | None = None
    offering_title: str | None = None
    booking_id: str | None = None
    external_event_id: str | None = None
    failure_code: str | None = None
    failure_message: str | None = None
    refund_id: str | None = None
    refunded_amount: int | None = None
    refund_reason: str | None = None
    created_at: datetime | None = None
    settled_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SettlementEvent:
    event_id: str
    event_type: str
    intent_id: str
    outcome: SettlementOutcome
    failure_code: str | None = None
    failure_message: str | None = None
    amount: int | None = None
