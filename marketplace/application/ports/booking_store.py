from __future__ import annotations

from abc import ABC, abstractmethod

from marketplace.domain.entities.booking import Booking


class BookingStorePort(ABC):
    @abstractmethod
    def add(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def compare_and_swap(self, booking_id: str, expected_version: int, updated: Booking) -> bool:
        """Write `updated` as version `expected_version + 1` only if the stored booking is still at `expected_version`."""
        raise NotImplementedError

    @abstractmethod
    def list_for_customer(self, customer_id: str) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_for_slot(self, slot_id: str) -> list[Booking]:
        raise NotImplementedError
