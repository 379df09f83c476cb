import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.bookings import consultations_router, registrations_router
from app.api.mock_checkout import router as mock_checkout_router
from app.api.webhooks import router as webhooks_router
from app.application.exceptions import BookingError, ValidationError
from app.core.config import settings


CONTEXT_KEYS = (
    "booking_id",
    "reference",
    "tracker",
    "order_id",
    "offering_id",
    "kind",
    "status",
    "previous",
    "payment_status",
    "state",
    "transaction",
    "amount",
    "paid",
    "expected",
    "attempt",
    "staff_id",
    "environment",
    "event",
    "trigger",
    "uid",
    "path",
    "error",
    "reason",
)


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in CONTEXT_KEYS:
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

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

app.include_router(registrations_router)
app.include_router(consultations_router)
app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(mock_checkout_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"error": exc.code, "reason": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields: dict[str, str] = {}
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path", "header")]
        fields.setdefault(".".join(loc) or "__root__", item.get("msg", "Invalid value"))
    error = ValidationError("Invalid request", fields)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
