from __future__ import annotations

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from marketplace.application.dto.settlement_event import SettlementEventDTO
from marketplace.wiring.dependencies import build_payment_orchestrator, get_dispatcher


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/payments")
async def payments_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> Response:
    try:
        try:
            orchestrator = build_payment_orchestrator(get_dispatcher(background_tasks))
        except Exception as e:
            logger.exception("Failed to initialize payment orchestrator", extra={"error": str(e)})
            return Response(status_code=500)

        body = await request.body()
        try:
            payload = json.loads(body.decode("utf-8")) if body else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.exception("Failed to parse webhook body")
            return Response(status_code=400)

        try:
            event = SettlementEventDTO.model_validate(payload).to_event()
        except ValidationError:
            logger.exception("Webhook body is not a payment event")
            return Response(status_code=400)
        if event is None:
            logger.info("Webhook event ignored", extra={"event_type": payload.get("type")})
            return JSONResponse({"received": True, "status": "ignored"})

        result = orchestrator.reconcile(event)
        logger.info(
            "Settlement webhook handled",
            extra={"event_id": event.event_id, "event_type": event.event_type, "status": result.status.value},
        )
        return JSONResponse({"received": True, "status": result.status.value})
    except Exception as e:
        logger.exception("Error processing payment webhook", extra={"error": str(e)})
        return Response(status_code=500)
