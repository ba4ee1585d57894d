from __future__ import annotations

import logging
from typing import Any

import httpx

from marketplace.application.ports.notifier import NotificationKind, NotifierPort
from marketplace.core.config import settings


SUBJECTS: dict[NotificationKind, str] = {
    NotificationKind.enrollment_confirmed: "Your enrollment is confirmed",
    NotificationKind.specialist_new_enrollment: "You have a new enrollment",
    NotificationKind.payment_failed: "Your payment did not go through",
    NotificationKind.refund_processed: "Your refund has been processed",
    NotificationKind.booking_confirmed: "Your session is booked",
    NotificationKind.booking_cancelled: "A session was cancelled",
}


class HttpNotifier(NotifierPort):
    """Hands notifications to a mail relay as JSON; the relay owns templates and delivery."""

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        from_address: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._endpoint = endpoint or settings.NOTIFY_ENDPOINT
        self._api_key = api_key or settings.NOTIFY_API_KEY
        self._from_address = from_address or settings.NOTIFY_FROM_ADDRESS
        self._client = client or httpx.Client(timeout=timeout or settings.EXTERNAL_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._endpoint:
            raise ValueError("NOTIFY_ENDPOINT is required for the HTTP notifier")

    def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> None:
        body = {
            "template": kind.value,
            "from": self._from_address,
            "to": payload.get("recipient") or payload.get("customer_email"),
            "subject": SUBJECTS.get(kind, kind.value),
            "data": payload,
        }
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        response = self._client.post(self._endpoint, json=body, headers=headers)
        if response.status_code >= 400:
            self._logger.error(
                "Notification relay rejected message",
                extra={"kind": kind.value, "status": response.status_code},
            )
            response.raise_for_status()
        self._logger.info("Notification sent", extra={"kind": kind.value})
