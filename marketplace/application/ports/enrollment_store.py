from __future__ import annotations

from abc import ABC, abstractmethod

from marketplace.domain.entities.enrollment import Enrollment


class EnrollmentStorePort(ABC):
    @abstractmethod
    def get(self, enrollment_id: str) -> Enrollment | None:
        raise NotImplementedError

    @abstractmethod
    def find(self, customer_id: str, offering_id: str) -> Enrollment | None:
        """Enrollments are unique per (customer, offering)."""
        raise NotImplementedError

    @abstractmethod
    def find_by_payment(self, payment_id: str) -> Enrollment | None:
        raise NotImplementedError

    @abstractmethod
    def upsert(self, enrollment: Enrollment) -> Enrollment:
        """
        Insert, or update the existing (customer, offering) record in place.
        Returns the stored record; its id is the existing one when updating.
        """
        raise NotImplementedError

    @abstractmethod
    def list_for_customer(self, customer_id: str) -> list[Enrollment]:
        raise NotImplementedError
