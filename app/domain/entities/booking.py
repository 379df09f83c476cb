from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus


@dataclass(frozen=True)
class Booking:
    id: str
    kind: BookingKind
    reference_number: str
    offering_id: str
    full_name: str
    email: str
    phone_number: str
    amount: int  # major currency units, copied from the catalog at creation
    currency: str
    created_at: datetime
    updated_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    booking_status: BookingStatus = BookingStatus.PENDING_PAYMENT
    tracker_token: str | None = None
    transaction_ref: str | None = None
    assigned_staff_id: str | None = None
    staff_notes: str | None = None
    scheduled_at: datetime | None = None
    meeting_link: str | None = None
    calendar_booking_uid: str | None = None
    confirmation_sent_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID


@dataclass(frozen=True)
class PublicStatus:
    reference_number: str
    kind: BookingKind
    booking_status: BookingStatus
    payment_status: PaymentStatus
    created_at: datetime
    scheduled_at: datetime | None = None
    meeting_link: str | None = None


@dataclass(frozen=True)
class BookingPage:
    items: list[Booking]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
