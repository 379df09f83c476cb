from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.entities.booking import Booking, BookingPage, PublicStatus
from app.domain.entities.payment import PaymentInitiation
from app.domain.entities.scheduling import GateDecision
from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus


class CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentRequestSchema(CamelSchema):
    return_url: str = Field(min_length=1, max_length=2048)
    cancel_url: str = Field(min_length=1, max_length=2048)


class ConfirmPaymentRequestSchema(CamelSchema):
    tracker_token: str = Field(min_length=1, max_length=255)


class AssignRequestSchema(CamelSchema):
    staff_id: str = Field(min_length=1, max_length=255)


class StatusUpdateRequestSchema(CamelSchema):
    status: str = Field(min_length=1)
    notes: str | None = Field(default=None, max_length=5000)


class BookingSchema(CamelSchema):
    id: str
    kind: BookingKind
    reference_number: str
    offering_id: str
    full_name: str
    email: str
    phone_number: str
    amount: int
    currency: str
    payment_status: PaymentStatus
    booking_status: BookingStatus
    transaction_ref: str | None = None
    assigned_staff_id: str | None = None
    staff_notes: str | None = None
    scheduled_at: datetime | None = None
    meeting_link: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingSchema":
        return cls(
            id=booking.id,
            kind=booking.kind,
            reference_number=booking.reference_number,
            offering_id=booking.offering_id,
            full_name=booking.full_name,
            email=booking.email,
            phone_number=booking.phone_number,
            amount=booking.amount,
            currency=booking.currency,
            payment_status=booking.payment_status,
            booking_status=booking.booking_status,
            transaction_ref=booking.transaction_ref,
            assigned_staff_id=booking.assigned_staff_id,
            staff_notes=booking.staff_notes,
            scheduled_at=booking.scheduled_at,
            meeting_link=booking.meeting_link,
            details=booking.details,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingPageSchema(CamelSchema):
    items: list[BookingSchema]
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_page(cls, page: BookingPage) -> "BookingPageSchema":
        return cls(
            items=[BookingSchema.from_entity(b) for b in page.items],
            page=page.page,
            limit=page.limit,
            total=page.total,
            total_pages=page.total_pages,
        )


class PaymentInitiationSchema(CamelSchema):
    checkout_url: str
    tracker_token: str
    order_id: str
    amount: int
    currency: str
    environment: str

    @classmethod
    def from_entity(cls, initiation: PaymentInitiation) -> "PaymentInitiationSchema":
        return cls(
            checkout_url=initiation.checkout_url,
            tracker_token=initiation.tracker_token,
            order_id=initiation.order_id,
            amount=initiation.amount,
            currency=initiation.currency,
            environment=initiation.environment,
        )


class PublicStatusSchema(CamelSchema):
    reference_number: str
    kind: BookingKind
    booking_status: BookingStatus
    payment_status: PaymentStatus
    created_at: datetime
    scheduled_at: datetime | None = None
    meeting_link: str | None = None

    @classmethod
    def from_entity(cls, status: PublicStatus) -> "PublicStatusSchema":
        return cls(
            reference_number=status.reference_number,
            kind=status.kind,
            booking_status=status.booking_status,
            payment_status=status.payment_status,
            created_at=status.created_at,
            scheduled_at=status.scheduled_at,
            meeting_link=status.meeting_link,
        )


class GateDecisionSchema(CamelSchema):
    kind: BookingKind
    next_step: str
    scheduling_enabled: bool = False
    scheduling_link: str | None = None
    prefill: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, decision: GateDecision) -> "GateDecisionSchema":
        return cls(
            kind=decision.kind,
            next_step=decision.next_step,
            scheduling_enabled=decision.scheduling_enabled,
            scheduling_link=decision.scheduling_link,
            prefill=decision.prefill,
        )


class SafepayWebhookDataSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tracker: str | None = None
    state: str | None = None


class SafepayWebhookSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    data: SafepayWebhookDataSchema = Field(default_factory=SafepayWebhookDataSchema)

    def payment_state(self) -> str:
        if self.type == "payment.succeeded":
            return "PAID"
        if self.type == "payment.failed":
            return "FAILED"
        return (self.data.state or "").upper()


class CalcomResponseValueSchema(BaseModel):
    value: Any = None


class CalcomPayloadSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: str
    id: int | None = None
    start_time: datetime = Field(alias="startTime")
    meeting_url: str | None = Field(default=None, alias="meetingUrl")
    metadata: dict[str, Any] = Field(default_factory=dict)
    responses: dict[str, CalcomResponseValueSchema] = Field(default_factory=dict)
    attendees: list[dict[str, Any]] = Field(default_factory=list)

    def attendee_email(self) -> str | None:
        email = self.responses.get("email")
        if email is not None and email.value:
            return str(email.value)
        if self.attendees:
            return self.attendees[0].get("email")
        return None


class CalcomWebhookSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trigger_event: str = Field(alias="triggerEvent")
    payload: CalcomPayloadSchema | None = None
