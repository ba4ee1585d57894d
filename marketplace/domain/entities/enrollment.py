from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EnrollmentStatus(str, Enum):
    pending = "pending"
    active = "active"
    refunded = "refunded"


class EnrollmentPaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


@dataclass(frozen=True)
class Enrollment:
    id: str
    customer_id: str
    specialist_id: str
    offering_id: str
    customer_email: str | None = None
    booking_id: str | None = None
    status: EnrollmentStatus = EnrollmentStatus.pending
    payment_status: EnrollmentPaymentStatus = EnrollmentPaymentStatus.pending
    payment_id: str | None = None
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    webhook_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
