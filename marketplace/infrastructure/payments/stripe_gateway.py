from __future__ import annotations

import logging
from typing import Any

import httpx

from marketplace.application.ports.payment_gateway import GatewayResult, PaymentGatewayPort
from marketplace.core.config import settings


def _form_metadata(metadata: dict[str, str] | None) -> dict[str, str]:
    return {f"metadata[{key}]": str(value) for key, value in (metadata or {}).items() if value is not None}


class StripeGateway(PaymentGatewayPort):
    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self._base_url = (base_url or settings.STRIPE_API_BASE).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout or settings.EXTERNAL_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the Stripe gateway")

    def create_customer(self, email: str, name: str | None, metadata: dict[str, str] | None = None) -> GatewayResult:
        form = {"email": email, **_form_metadata(metadata)}
        if name:
            form["name"] = name
        result = self._post("/customers", form)
        if not result.success:
            return result
        return GatewayResult.ok(customer_id=result.data["id"])

    def create_intent(
        self,
        amount: int,
        currency: str,
        customer_handle: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> GatewayResult:
        form = {
            "amount": str(amount),
            "currency": currency.lower(),
            "customer": customer_handle,
            "automatic_payment_methods[enabled]": "true",
            **_form_metadata(metadata),
        }
        if description:
            form["description"] = description
        result = self._post("/payment_intents", form)
        if not result.success:
            return result
        return GatewayResult.ok(
            intent_id=result.data["id"],
            client_secret=result.data.get("client_secret"),
            status=result.data.get("status"),
        )

    def retrieve_intent(self, intent_id: str) -> GatewayResult:
        result = self._request("GET", f"/payment_intents/{intent_id}")
        if not result.success:
            return result
        return GatewayResult.ok(
            status=result.data.get("status"),
            amount=result.data.get("amount"),
            currency=result.data.get("currency"),
        )

    def refund(self, intent_id: str, amount: int | None = None, reason: str | None = None) -> GatewayResult:
        form = {"payment_intent": intent_id}
        if amount is not None:
            form["amount"] = str(amount)
        if reason:
            form["metadata[reason]"] = reason
        result = self._post("/refunds", form)
        if not result.success:
            return result
        return GatewayResult.ok(
            refund_id=result.data["id"],
            amount=result.data.get("amount"),
            status=result.data.get("status"),
        )

    def _post(self, path: str, form: dict[str, str]) -> GatewayResult:
        return self._request("POST", path, data=form)

    def _request(self, method: str, path: str, data: dict[str, str] | None = None) -> GatewayResult:
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._secret_key}"}
        try:
            response = self._client.request(method, url, data=data, headers=headers)
        except httpx.HTTPError as e:
            self._logger.error("Stripe request failed", extra={"path": path, "error": str(e)})
            return GatewayResult.fail(str(e), code="network_error")

        if response.status_code >= 400:
            error_code, error_message = _error_details(response)
            self._logger.error(
                "Stripe returned an error",
                extra={"path": path, "status": response.status_code, "error_code": error_code},
            )
            return GatewayResult.fail(error_message, code=error_code)

        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            return GatewayResult.fail("Invalid JSON from Stripe", code="bad_response")
        return GatewayResult.ok(**body)


def _error_details(response: httpx.Response) -> tuple[str | None, str]:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"
    return error.get("code") or error.get("type"), error.get("message") or f"HTTP {response.status_code}"
