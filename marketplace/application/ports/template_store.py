from __future__ import annotations

from abc import ABC, abstractmethod

from marketplace.domain.entities.availability import AvailabilityTemplate


class TemplateStorePort(ABC):
    @abstractmethod
    def activate(self, template: AvailabilityTemplate) -> AvailabilityTemplate:
        """Store `template` as the specialist's only active template, deactivating prior ones."""
        raise NotImplementedError

    @abstractmethod
    def get(self, template_id: str) -> AvailabilityTemplate | None:
        raise NotImplementedError

    @abstractmethod
    def get_active(self, specialist_id: str) -> AvailabilityTemplate | None:
        raise NotImplementedError

    @abstractmethod
    def deactivate(self, template_id: str) -> AvailabilityTemplate | None:
        raise NotImplementedError

    @abstractmethod
    def list_for_specialist(self, specialist_id: str) -> list[AvailabilityTemplate]:
        raise NotImplementedError
