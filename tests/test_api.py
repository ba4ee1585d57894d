"""
HTTP surface: booking through payment webhook, and error mapping.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from marketplace.application.dto.settlement_event import SettlementEventDTO
from marketplace.domain.entities.payment import SettlementOutcome
from marketplace.core.config import settings
from marketplace.main import app, run
from marketplace.wiring.dependencies import reset_dependencies


@pytest.fixture
def client():
    reset_dependencies()
    with TestClient(app) as test_client:
        yield test_client
    reset_dependencies()


def _setup_bookable_slots(client: TestClient) -> tuple[str, list[dict]]:
    offering = client.post(
        "/v1/offerings",
        json={
            "specialist_id": "spec-1",
            "title": "Portfolio review",
            "service_type": "consulting",
            "price": 5000,
            "status": "draft",
            "specialist_email": "coach@example.com",
        },
    )
    assert offering.status_code == 201
    offering_id = offering.json()["offering"]["id"]

    template = client.post(
        "/v1/availability/templates",
        json={
            "specialist_id": "spec-1",
            "weekly_pattern": {
                day: {"ranges": [{"start_time": "09:00", "end_time": "12:00"}]}
                for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
            },
        },
    )
    assert template.status_code == 201

    generated = client.post(
        "/v1/slots/generate",
        json={
            "specialist_id": "spec-1",
            "start_date": (date.today() + timedelta(days=3)).isoformat(),
            "days": 1,
            "offering_id": offering_id,
        },
    )
    assert generated.status_code == 201
    return offering_id, generated.json()["slots"]


def _webhook(intent_id: str, event_id: str = "evt_1", event_type: str = "payment_intent.succeeded") -> dict:
    return {"id": event_id, "type": event_type, "data": {"object": {"id": intent_id, "amount": 5000}}}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_book_pay_and_confirm(client):
    _, slots = _setup_bookable_slots(client)
    assert [s["start_time"] for s in slots] == ["09:00", "10:00", "11:00"]

    booked = client.post(
        "/v1/bookings",
        json={"slot_id": slots[0]["id"], "customer": {"customer_id": "cust-1", "email": "ana@example.com"}},
    )
    assert booked.status_code == 201
    body = booked.json()
    assert body["requires_payment"] is True
    assert body["booking"]["status"] == "pending"
    intent_id = body["payment"]["external_intent_id"]
    assert body["payment"]["commission_amount"] == 1000

    first = client.post("/webhooks/payments", json=_webhook(intent_id))
    again = client.post("/webhooks/payments", json=_webhook(intent_id))
    assert first.json() == {"received": True, "status": "processed"}
    assert again.json() == {"received": True, "status": "duplicate"}

    booking = client.get(f"/v1/bookings/{body['booking']['id']}").json()
    assert booking["status"] == "confirmed"
    assert booking["meeting"]["join_url"].startswith("https://meet.example.com/")

    payments = client.get("/v1/payments/specialists/spec-1", params={"status": "completed"}).json()
    assert [p["id"] for p in payments] == [body["payment"]["id"]]


def test_booked_slot_conflict_and_cancel(client):
    _, slots = _setup_bookable_slots(client)
    slot_id = slots[1]["id"]
    first = client.post(
        "/v1/bookings", json={"slot_id": slot_id, "customer": {"customer_id": "cust-1", "email": "a@example.com"}}
    )
    second = client.post(
        "/v1/bookings", json={"slot_id": slot_id, "customer": {"customer_id": "cust-2", "email": "b@example.com"}}
    )

    assert second.status_code == 409
    assert second.json()["error"] == "slot_unavailable"
    assert second.json()["reason"] == "full"

    booking_id = first.json()["booking"]["id"]
    cancelled = client.post(
        f"/v1/bookings/{booking_id}/cancel", json={"actor_id": "spec-1", "actor_role": "specialist"}
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert client.get(f"/v1/slots/{slot_id}").json()["booked_count"] == 0


def test_open_ranges_and_commission_quote(client):
    _setup_bookable_slots(client)
    on_date = (date.today() + timedelta(days=3)).isoformat()

    ranges = client.get("/v1/availability/specialists/spec-1/open-ranges", params={"date": on_date}).json()
    assert ranges["ranges"] == [{"start_time": "09:00", "end_time": "12:00"}]

    quote = client.get("/v1/commission/calculate", params={"amount": 10000, "service_type": "consulting"}).json()
    assert (quote["platform_commission"], quote["specialist_earnings"]) == (2000, 8000)


def test_not_found_errors_use_error_body(client):
    missing_slot = client.post(
        "/v1/bookings", json={"slot_id": "nope", "customer": {"customer_id": "cust-1", "email": "a@example.com"}}
    )
    assert missing_slot.status_code == 404
    assert missing_slot.json()["error"] == "slot_not_found"

    missing_payment = client.get("/v1/payments/nope")
    assert missing_payment.status_code == 404
    assert missing_payment.json()["error"] == "payment_not_found"


def test_intent_for_another_customers_booking_is_unprocessable(client):
    offering_id, slots = _setup_bookable_slots(client)
    booked = client.post(
        "/v1/bookings", json={"slot_id": slots[0]["id"], "customer": {"customer_id": "cust-1", "email": "a@example.com"}}
    )

    response = client.post(
        "/v1/payments/intents",
        json={
            "customer": {"customer_id": "cust-2", "email": "b@example.com"},
            "offering_id": offering_id,
            "booking_id": booked.json()["booking"]["id"],
        },
    )

    assert response.status_code == 422
    assert response.json()["error"] == "booking_mismatch"


def test_webhook_acknowledges_unknown_and_unhandled_events(client):
    unknown = client.post("/webhooks/payments", json=_webhook("pi_nobody"))
    assert unknown.status_code == 200
    assert unknown.json()["status"] == "unknown_intent"

    unhandled = client.post("/webhooks/payments", json=_webhook("pi_nobody", event_type="customer.created"))
    assert unhandled.json() == {"received": True, "status": "ignored"}

    garbage = client.post("/webhooks/payments", content=b"{not json", headers={"content-type": "application/json"})
    assert garbage.status_code == 400


def test_gateway_events_map_to_settlement_events():
    refund = SettlementEventDTO.model_validate(
        {"id": "evt_9", "type": "charge.refunded", "data": {"object": {"id": "ch_1", "payment_intent": "pi_7", "amount_refunded": 2500}}}
    ).to_event()
    failed = SettlementEventDTO.model_validate(
        {
            "id": "evt_10",
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_8", "last_payment_error": {"decline_code": "insufficient_funds", "message": "No funds"}}},
        }
    ).to_event()

    assert (refund.intent_id, refund.outcome, refund.amount) == ("pi_7", SettlementOutcome.refunded, 2500)
    assert (failed.intent_id, failed.failure_code, failed.failure_message) == ("pi_8", "insufficient_funds", "No funds")
    assert SettlementEventDTO.model_validate({"id": "evt_11", "type": "payment_intent.succeeded"}).to_event() is None


def test_run_serves_app_with_configured_address(monkeypatch):
    calls = []
    monkeypatch.setattr("marketplace.main.uvicorn.run", lambda target, **kwargs: calls.append((target, kwargs)))

    run()

    assert len(calls) == 1
    target, kwargs = calls[0]
    assert target == "marketplace.main:app"
    assert (kwargs["host"], kwargs["port"]) == (settings.HOST, settings.PORT)
    assert kwargs["log_config"] is None
