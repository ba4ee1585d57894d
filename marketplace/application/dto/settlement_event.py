from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from marketplace.domain.entities.payment import SettlementEvent, SettlementOutcome


OUTCOME_BY_EVENT_TYPE: dict[str, SettlementOutcome] = {
    "payment_intent.succeeded": SettlementOutcome.succeeded,
    "payment_intent.payment_failed": SettlementOutcome.failed,
    "charge.refunded": SettlementOutcome.refunded,
    "charge.dispute.created": SettlementOutcome.disputed,
}


class EventData(BaseModel):
    object: dict[str, Any] = Field(default_factory=dict)


class SettlementEventDTO(BaseModel):
    id: str | None = None
    type: str | None = None
    data: EventData = Field(default_factory=EventData)

    def to_event(self) -> SettlementEvent | None:
        """None when the event type is not one we settle on, or the payload lacks ids."""
        outcome = OUTCOME_BY_EVENT_TYPE.get(self.type or "")
        if outcome is None or not self.id:
            return None

        obj = self.data.object
        if self.type and self.type.startswith("payment_intent."):
            intent_id = obj.get("id")
        else:
            intent_id = obj.get("payment_intent")
        if not intent_id:
            return None

        error = obj.get("last_payment_error") or {}
        amount = obj.get("amount_refunded") if outcome == SettlementOutcome.refunded else obj.get("amount")

        return SettlementEvent(
            event_id=str(self.id),
            event_type=str(self.type),
            intent_id=str(intent_id),
            outcome=outcome,
            failure_code=error.get("code") or error.get("decline_code"),
            failure_message=error.get("message"),
            amount=int(amount) if amount is not None else None,
        )
