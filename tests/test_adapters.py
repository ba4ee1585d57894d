"""
Outbound HTTP adapters against httpx mock transports, and task dispatch.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from marketplace.application.exceptions import MeetingProviderError
from marketplace.application.ports.meeting_provider import MeetingRequest
from marketplace.application.ports.notifier import NotificationKind
from marketplace.infrastructure.dispatch.inline import InlineTaskDispatcher
from marketplace.infrastructure.meetings.zoom_client import ZoomMeetingClient
from marketplace.infrastructure.notifications.http_notifier import HttpNotifier
from marketplace.infrastructure.payments.stripe_gateway import StripeGateway


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_stripe_intent_is_form_encoded_with_metadata():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"})

    gateway = StripeGateway(secret_key="sk_test", base_url="https://stripe.test/v1", client=_client(handler))
    result = gateway.create_intent(5000, "USD", "cus_1", metadata={"offering_id": "offer-1"})

    assert result.success is True
    assert result.data == {"intent_id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"}
    request = seen[0]
    assert request.url.path == "/v1/payment_intents"
    assert request.headers["Authorization"] == "Bearer sk_test"
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["5000"]
    assert form["currency"] == ["usd"]
    assert form["metadata[offering_id]"] == ["offer-1"]


def test_stripe_errors_become_failed_results():
    def declined(request: httpx.Request) -> httpx.Response:
        return httpx.Response(402, json={"error": {"code": "card_declined", "message": "Your card was declined."}})

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = StripeGateway(secret_key="sk_test", client=_client(declined)).refund("pi_1")
    assert (result.success, result.code, result.error) == (False, "card_declined", "Your card was declined.")

    result = StripeGateway(secret_key="sk_test", client=_client(unreachable)).retrieve_intent("pi_1")
    assert (result.success, result.code) == (False, "network_error")


def test_stripe_requires_secret_key(monkeypatch):
    from marketplace.core.config import settings

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    with pytest.raises(ValueError):
        StripeGateway()


def _meeting_request() -> MeetingRequest:
    start = datetime(2030, 1, 10, 10, 0, tzinfo=timezone.utc)
    return MeetingRequest(
        host_ref="spec-1",
        participant_email="ana@example.com",
        start_time=start,
        end_time=start + timedelta(minutes=45),
        topic="Session with Ana",
    )


def test_zoom_meeting_is_created_for_slot_window():
    payloads: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(201, json={"id": 987, "join_url": "https://zoom.test/j/987", "start_url": "https://zoom.test/s/987"})

    client = ZoomMeetingClient(access_token="token", base_url="https://zoom.test/v2", client=_client(handler))
    meeting = client.create_meeting(_meeting_request())

    assert (meeting.meeting_id, meeting.join_url) == ("987", "https://zoom.test/j/987")
    assert payloads[0]["start_time"] == "2030-01-10T10:00:00Z"
    assert payloads[0]["duration"] == 45


def test_zoom_failure_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream down")

    client = ZoomMeetingClient(access_token="token", client=_client(handler))
    with pytest.raises(MeetingProviderError):
        client.create_meeting(_meeting_request())


def test_http_notifier_posts_to_relay():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(202)

    notifier = HttpNotifier(endpoint="https://mail.test/send", from_address="noreply@test", client=_client(handler))
    notifier.notify(NotificationKind.payment_failed, {"recipient": "ana@example.com", "payment_id": "p1"})

    assert bodies[0]["to"] == "ana@example.com"
    assert bodies[0]["template"] == "payment_failed"
    assert bodies[0]["data"]["payment_id"] == "p1"


def test_dispatched_task_failure_is_contained():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    notifier = HttpNotifier(endpoint="https://mail.test/send", client=_client(handler))
    with pytest.raises(httpx.HTTPStatusError):
        notifier.notify(NotificationKind.booking_confirmed, {"recipient": "ana@example.com"})

    # Through the dispatcher the same failure is logged, not raised
    InlineTaskDispatcher().dispatch("booking_confirmed", notifier.notify, NotificationKind.booking_confirmed, {})
