from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls, **data: Any) -> "GatewayResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> "GatewayResult":
        return cls(success=False, error=error, code=code)


class PaymentGatewayPort(ABC):
    """Remote payment provider. Implementations return results and never raise."""

    @abstractmethod
    def create_customer(self, email: str, name: str | None, metadata: dict[str, str] | None = None) -> GatewayResult:
        """data: {"customer_id"}"""
        raise NotImplementedError

    @abstractmethod
    def create_intent(
        self,
        amount: int,
        currency: str,
        customer_handle: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> GatewayResult:
        """data: {"intent_id", "client_secret", "status"}"""
        raise NotImplementedError

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> GatewayResult:
        """data: {"status", "amount", "currency"}"""
        raise NotImplementedError

    @abstractmethod
    def refund(self, intent_id: str, amount: int | None = None, reason: str | None = None) -> GatewayResult:
        """data: {"refund_id", "amount", "status"}"""
        raise NotImplementedError
