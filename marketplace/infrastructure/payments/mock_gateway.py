from __future__ import annotations

import logging
from typing import Any

from marketplace.application.ports.payment_gateway import GatewayResult, PaymentGatewayPort


class MockPaymentGateway(PaymentGatewayPort):
    """In-process gateway. Records every call; `fail_on` names operations that should fail."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_on = set(fail_on or ())
        self._intents: dict[str, dict[str, Any]] = {}
        self._logger = logging.getLogger(__name__)

    def create_customer(self, email: str, name: str | None, metadata: dict[str, str] | None = None) -> GatewayResult:
        self.calls.append(("create_customer", {"email": email, "name": name, "metadata": metadata}))
        if "create_customer" in self.fail_on:
            return GatewayResult.fail("Mock customer creation failed", code="mock_error")
        return GatewayResult.ok(customer_id=f"cus_mock_{len(self.calls)}")

    def create_intent(
        self,
        amount: int,
        currency: str,
        customer_handle: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> GatewayResult:
        self.calls.append(
            ("create_intent", {"amount": amount, "currency": currency, "customer": customer_handle, "metadata": metadata})
        )
        if "create_intent" in self.fail_on:
            return GatewayResult.fail("Mock intent creation failed", code="card_declined")
        intent_id = f"pi_mock_{len(self._intents) + 1}"
        self._intents[intent_id] = {"amount": amount, "currency": currency, "status": "requires_payment_method"}
        self._logger.info("Mock payment intent created", extra={"intent_id": intent_id, "amount": amount})
        return GatewayResult.ok(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret",
            status="requires_payment_method",
        )

    def retrieve_intent(self, intent_id: str) -> GatewayResult:
        self.calls.append(("retrieve_intent", {"intent_id": intent_id}))
        intent = self._intents.get(intent_id)
        if intent is None:
            return GatewayResult.fail(f"No such payment_intent: {intent_id}", code="resource_missing")
        return GatewayResult.ok(**intent)

    def refund(self, intent_id: str, amount: int | None = None, reason: str | None = None) -> GatewayResult:
        self.calls.append(("refund", {"intent_id": intent_id, "amount": amount, "reason": reason}))
        if "refund" in self.fail_on:
            return GatewayResult.fail("Mock refund failed", code="refund_failed")
        intent = self._intents.get(intent_id, {})
        return GatewayResult.ok(
            refund_id=f"re_mock_{len(self.calls)}",
            amount=amount if amount is not None else intent.get("amount"),
            status="succeeded",
        )

    def mark_succeeded(self, intent_id: str) -> None:
        """Simulate the customer completing the payment sheet."""
        self._intents[intent_id]["status"] = "succeeded"

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)
