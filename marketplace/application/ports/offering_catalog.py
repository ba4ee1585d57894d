from __future__ import annotations

from abc import ABC, abstractmethod

from marketplace.domain.entities.offering import Offering


class OfferingCatalogPort(ABC):
    @abstractmethod
    def get_offering(self, offering_id: str) -> Offering | None:
        """Get offering by id."""
        raise NotImplementedError

    @abstractmethod
    def save_offering(self, offering: Offering) -> Offering:
        """Create or replace an offering."""
        raise NotImplementedError

    @abstractmethod
    def list_for_specialist(self, specialist_id: str) -> list[Offering]:
        raise NotImplementedError
