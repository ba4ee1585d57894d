from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.application.exceptions import (
    BookingMismatchError,
    BookingNotFoundError,
    BookingRuleViolationError,
    DuplicateEnrollmentError,
    DuplicateIdempotencyKeyError,
    GatewayError,
    InvalidTransitionError,
    MarketplaceError,
    MeetingProviderError,
    OfferingNotFoundError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    PaymentStateError,
    RefundNotAllowedError,
    SlotConflictError,
    SlotNotFoundError,
    SlotUnavailableError,
)


logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[MarketplaceError], int], ...] = (
    (SlotNotFoundError, 404),
    (BookingNotFoundError, 404),
    (OfferingNotFoundError, 404),
    (PaymentNotFoundError, 404),
    (RefundNotAllowedError, 403),
    (PaymentAccessDeniedError, 403),
    (BookingMismatchError, 422),
    (SlotUnavailableError, 409),
    (SlotConflictError, 409),
    (InvalidTransitionError, 409),
    (BookingRuleViolationError, 409),
    (DuplicateEnrollmentError, 409),
    (DuplicateIdempotencyKeyError, 409),
    (PaymentStateError, 409),
    (GatewayError, 502),
    (MeetingProviderError, 502),
)


def status_for(error: MarketplaceError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def error_body(error: MarketplaceError) -> dict[str, object]:
    body: dict[str, object] = {"error": error.code, "detail": str(error)}
    if isinstance(error, SlotUnavailableError):
        body["reason"] = error.reason
    return body


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    status = status_for(exc)
    logger.info(
        "Request rejected",
        extra={"path": request.url.path, "error": exc.code, "status": status},
    )
    return JSONResponse(status_code=status, content=error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
