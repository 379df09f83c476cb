from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError as PydanticValidationError

from app.api.schemas import CalcomWebhookSchema, SafepayWebhookSchema
from app.application.exceptions import BookingError, WebhookSignatureError
from app.application.use_cases.payment import PaymentUseCase
from app.application.use_cases.scheduling_gate import SchedulingGate
from app.domain.entities.scheduling import ScheduledEvent
from app.wiring.dependencies import get_payment_use_case, get_scheduling_gate


router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_json(request: Request) -> dict | None:
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.exception("Failed to parse webhook body")
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/webhooks/safepay")
async def safepay_webhook(
    request: Request,
    uc: PaymentUseCase = Depends(get_payment_use_case),
) -> Response:
    payload = await _read_json(request)
    if payload is None:
        return Response(status_code=400)

    try:
        event = SafepayWebhookSchema.model_validate(payload)
    except PydanticValidationError:
        logger.exception("Invalid payment webhook payload")
        return Response(status_code=400)

    tracker = event.data.tracker
    if not tracker:
        logger.warning("Payment webhook without tracker", extra={"event": event.type})
        return Response(status_code=200)

    signature = request.headers.get("X-SFPY-SIGNATURE")
    try:
        uc.handle_gateway_webhook(tracker, event.payment_state(), signature)
    except WebhookSignatureError:
        return Response(status_code=403)
    except BookingError as e:
        logger.warning(
            "Payment webhook not applied",
            extra={"tracker": tracker, "error": e.code, "reason": e.message},
        )
        return Response(status_code=200)

    logger.info("Payment webhook processed", extra={"tracker": tracker, "event": event.type})
    return Response(status_code=200)


@router.post("/webhooks/calcom")
async def calcom_webhook(
    request: Request,
    gate: SchedulingGate = Depends(get_scheduling_gate),
) -> Response:
    payload = await _read_json(request)
    if payload is None:
        return Response(status_code=400)

    try:
        event = CalcomWebhookSchema.model_validate(payload)
    except PydanticValidationError:
        logger.exception("Invalid calendar webhook payload")
        return Response(status_code=400)

    if event.payload is None:
        logger.info("Calendar webhook without payload", extra={"trigger": event.trigger_event})
        return Response(status_code=200)

    data = event.payload
    booking = gate.record_scheduled(
        ScheduledEvent(
            trigger=event.trigger_event,
            uid=data.uid,
            start_time=data.start_time,
            calendar_booking_id=data.id,
            meeting_url=data.meeting_url,
            reference_number=data.metadata.get("referenceNumber"),
            attendee_email=data.attendee_email(),
            metadata=data.metadata,
        )
    )
    logger.info(
        "Calendar webhook processed",
        extra={"trigger": event.trigger_event, "reference": booking.reference_number if booking else None},
    )
    return Response(status_code=200)
