from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from marketplace.domain.entities.payment import Payment, PaymentStatus


class PaymentStorePort(ABC):
    @abstractmethod
    def add(self, payment: Payment) -> None:
        """Insert a payment. Raises DuplicateIdempotencyKeyError if the key is taken."""
        raise NotImplementedError

    @abstractmethod
    def get(self, payment_id: str) -> Payment | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_intent_id(self, intent_id: str) -> Payment | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_event_id(self, event_id: str) -> Payment | None:
        raise NotImplementedError

    @abstractmethod
    def find_recent(
        self,
        customer_id: str,
        offering_id: str,
        statuses: tuple[PaymentStatus, ...],
        since: datetime,
    ) -> Payment | None:
        """Most recent payment for (customer, offering) in one of `statuses` created after `since`."""
        raise NotImplementedError

    @abstractmethod
    def claim_event(self, payment_id: str, event_id: str, updated: Payment) -> bool:
        """
        Atomically write `updated` (which carries `event_id`) if the stored payment has
        no external event id yet and no other payment already holds `event_id`.
        Returns False when the event was already claimed.
        """
        raise NotImplementedError

    @abstractmethod
    def compare_and_swap(self, payment_id: str, expected_status: PaymentStatus, updated: Payment) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_for_specialist(self, specialist_id: str, status: PaymentStatus | None = None) -> list[Payment]:
        raise NotImplementedError
