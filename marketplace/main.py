import logging

import uvicorn
from fastapi import FastAPI

from marketplace.api.errors import register_error_handlers
from marketplace.api.v1.availability import router as availability_router
from marketplace.api.v1.bookings import router as bookings_router
from marketplace.api.v1.commission import router as commission_router
from marketplace.api.v1.offerings import router as offerings_router
from marketplace.api.v1.payments import router as payments_router
from marketplace.api.v1.slots import router as slots_router
from marketplace.api.webhooks import router as webhooks_router
from marketplace.core.config import settings


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "specialist_id",
            "slot_id",
            "booking_id",
            "payment_id",
            "intent_id",
            "event_id",
            "event_type",
            "offering_id",
            "status",
            "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title="Marketplace Scheduling & Commerce", version="1.0.0")
register_error_handlers(app)

app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(availability_router, tags=["availability"])
app.include_router(slots_router, tags=["slots"])
app.include_router(offerings_router, tags=["offerings"])
app.include_router(bookings_router, tags=["bookings"])
app.include_router(payments_router, tags=["payments"])
app.include_router(commission_router, tags=["commission"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(
        "marketplace.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENV.lower() in {"dev", "local"},
        log_config=None,
    )


if __name__ == "__main__":
    run()
