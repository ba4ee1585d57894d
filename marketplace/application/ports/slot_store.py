from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from marketplace.domain.entities.slot import Slot


class SlotStorePort(ABC):
    @abstractmethod
    def get(self, slot_id: str) -> Slot | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_key(self, specialist_id: str, on_date: date, start_time: str) -> Slot | None:
        """Lookup by the (specialist, date, start time) key."""
        raise NotImplementedError

    @abstractmethod
    def add_many(self, slots: list[Slot]) -> int:
        """Batch insert. Returns the number of slots written."""
        raise NotImplementedError

    @abstractmethod
    def list_for_specialist(
        self,
        specialist_id: str,
        start: date | None = None,
        end: date | None = None,
        bookable_only: bool = False,
    ) -> list[Slot]:
        """Slots ordered by (date, start_time)."""
        raise NotImplementedError

    @abstractmethod
    def list_for_offering(self, offering_id: str) -> list[Slot]:
        raise NotImplementedError

    @abstractmethod
    def compare_and_swap(self, slot_id: str, expected_version: int, updated: Slot) -> bool:
        """
        Replace the slot only if its stored version is still the one the caller
        read. The stored copy gets `expected_version + 1`. Returns False when
        another writer got there first.
        """
        raise NotImplementedError

    @abstractmethod
    def replace_for_offering(self, offering_id: str, slots: list[Slot]) -> tuple[int, int]:
        """
        Atomically delete every slot of the offering and insert `slots`.
        Raises SlotConflictError, leaving the store untouched, when any of the
        offering's slots holds a live booking. Returns (deleted, inserted).
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, slot_id: str) -> bool:
        raise NotImplementedError
