from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query

from app.api.schemas import (
    AssignRequestSchema,
    BookingPageSchema,
    BookingSchema,
    ConfirmPaymentRequestSchema,
    GateDecisionSchema,
    PaymentInitiationSchema,
    PaymentRequestSchema,
    PublicStatusSchema,
    StatusUpdateRequestSchema,
)
from app.application.exceptions import ForbiddenError, ValidationError
from app.application.use_cases.booking_lifecycle import BookingLifecycleUseCase
from app.application.use_cases.payment import PaymentUseCase
from app.application.use_cases.scheduling_gate import SchedulingGate
from app.application.validation import validate_intake
from app.core.config import settings
from app.domain.entities.status import KIND_PATHS, BookingKind, BookingStatus, PaymentStatus
from app.infrastructure.payments.webhook_verify import secrets_match
from app.wiring.dependencies import get_lifecycle_use_case, get_payment_use_case, get_scheduling_gate

logger = logging.getLogger(__name__)


def require_staff(x_staff_token: str | None = Header(None, alias="X-Staff-Token")) -> None:
    expected = settings.STAFF_API_TOKEN
    if not expected or not x_staff_token or not secrets_match(expected, x_staff_token):
        logger.warning("Rejected staff request")
        raise ForbiddenError("Staff access required")


def build_booking_router(kind: BookingKind) -> APIRouter:
    """Routes for one booking kind, mounted under its path segment."""
    router = APIRouter(prefix=f"/{KIND_PATHS[kind]}", tags=[KIND_PATHS[kind]])

    @router.post("", status_code=201, response_model=BookingSchema)
    def create_booking(
        payload: dict[str, Any] = Body(...),
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
    ):
        result = validate_intake({**payload, "kind": kind.value})
        if not result.ok:
            raise ValidationError("Invalid booking details", result.errors)
        return BookingSchema.from_entity(uc.create(result.data))

    @router.get("/status", response_model=PublicStatusSchema)
    def booking_status(
        reference_number: str = Query(..., alias="referenceNumber", min_length=1),
        email: str = Query(..., min_length=1),
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
    ):
        return PublicStatusSchema.from_entity(uc.get_status(reference_number, email, kind=kind))

    @router.post("/{booking_id}/pay", response_model=PaymentInitiationSchema)
    def initiate_payment(
        booking_id: str,
        req: PaymentRequestSchema,
        uc: PaymentUseCase = Depends(get_payment_use_case),
    ):
        initiation = uc.initiate(booking_id, req.return_url, req.cancel_url, kind=kind)
        return PaymentInitiationSchema.from_entity(initiation)

    @router.post("/{booking_id}/confirm-payment", response_model=BookingSchema)
    def confirm_payment(
        booking_id: str,
        req: ConfirmPaymentRequestSchema,
        uc: PaymentUseCase = Depends(get_payment_use_case),
    ):
        return BookingSchema.from_entity(uc.confirm(booking_id, req.tracker_token, kind=kind))

    @router.get("/{booking_id}/next-step", response_model=GateDecisionSchema)
    def next_step(
        booking_id: str,
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
        gate: SchedulingGate = Depends(get_scheduling_gate),
    ):
        return GateDecisionSchema.from_entity(gate.evaluate(uc.get(booking_id, kind=kind)))

    @router.post("/{booking_id}/finish-later", response_model=GateDecisionSchema)
    def finish_later(
        booking_id: str,
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
        gate: SchedulingGate = Depends(get_scheduling_gate),
    ):
        return GateDecisionSchema.from_entity(gate.finish_later(uc.get(booking_id, kind=kind)))

    @router.get("", response_model=BookingPageSchema, dependencies=[Depends(require_staff)])
    def list_bookings(
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        status: BookingStatus | None = Query(None),
        payment_status: PaymentStatus | None = Query(None, alias="paymentStatus"),
        search: str | None = Query(None),
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
    ):
        result = uc.list(kind, page=page, limit=limit, booking_status=status, payment_status=payment_status, search=search)
        return BookingPageSchema.from_page(result)

    @router.get("/{booking_id}", response_model=BookingSchema, dependencies=[Depends(require_staff)])
    def get_booking(booking_id: str, uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case)):
        return BookingSchema.from_entity(uc.get(booking_id, kind=kind))

    @router.patch("/{booking_id}/assign", response_model=BookingSchema, dependencies=[Depends(require_staff)])
    def assign_booking(
        booking_id: str,
        req: AssignRequestSchema,
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
    ):
        return BookingSchema.from_entity(uc.assign(booking_id, req.staff_id, kind=kind))

    @router.patch("/{booking_id}/status", response_model=BookingSchema, dependencies=[Depends(require_staff)])
    def update_booking_status(
        booking_id: str,
        req: StatusUpdateRequestSchema,
        uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case),
    ):
        return BookingSchema.from_entity(uc.update_status(booking_id, req.status, notes=req.notes, kind=kind))

    @router.patch("/{booking_id}/cancel", response_model=BookingSchema, dependencies=[Depends(require_staff)])
    def cancel_booking(booking_id: str, uc: BookingLifecycleUseCase = Depends(get_lifecycle_use_case)):
        return BookingSchema.from_entity(uc.cancel(booking_id, kind=kind))

    return router


registrations_router = build_booking_router(BookingKind.REGISTRATION)
consultations_router = build_booking_router(BookingKind.CONSULTATION)
