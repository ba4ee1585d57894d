from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class NotificationKind(str, Enum):
    enrollment_confirmed = "enrollment_confirmed"
    specialist_new_enrollment = "specialist_new_enrollment"
    payment_failed = "payment_failed"
    refund_processed = "refund_processed"
    booking_confirmed = "booking_confirmed"
    booking_cancelled = "booking_cancelled"


class NotifierPort(ABC):
    @abstractmethod
    def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        raise NotImplementedError
