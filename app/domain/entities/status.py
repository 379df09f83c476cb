from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BookingKind(str, Enum):
    REGISTRATION = "registration"
    CONSULTATION = "consultation"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"  # last session only, a new initiation resets to pending


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    PAYMENT_CONFIRMED = "payment_confirmed"
    IN_PROGRESS = "in_progress"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW})


@dataclass(frozen=True)
class KindPolicy:
    kind: BookingKind
    reference_prefix: str
    allowed: frozenset[BookingStatus]
    confirmed_status: BookingStatus
    active_status: BookingStatus

    @property
    def awaiting_activation(self) -> frozenset[BookingStatus]:
        return frozenset({BookingStatus.PENDING_PAYMENT, self.confirmed_status})

    def is_pre_payment(self, status: BookingStatus) -> bool:
        return status == BookingStatus.PENDING_PAYMENT

    def is_terminal(self, status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES


POLICIES: dict[BookingKind, KindPolicy] = {
    BookingKind.REGISTRATION: KindPolicy(
        kind=BookingKind.REGISTRATION,
        reference_prefix="REG",
        allowed=frozenset(
            {
                BookingStatus.PENDING_PAYMENT,
                BookingStatus.PAID,
                BookingStatus.IN_PROGRESS,
                BookingStatus.COMPLETED,
                BookingStatus.CANCELLED,
            }
        ),
        confirmed_status=BookingStatus.PAID,
        active_status=BookingStatus.IN_PROGRESS,
    ),
    BookingKind.CONSULTATION: KindPolicy(
        kind=BookingKind.CONSULTATION,
        reference_prefix="CON",
        allowed=frozenset(
            {
                BookingStatus.PENDING_PAYMENT,
                BookingStatus.PAYMENT_CONFIRMED,
                BookingStatus.BOOKED,
                BookingStatus.COMPLETED,
                BookingStatus.CANCELLED,
                BookingStatus.NO_SHOW,
            }
        ),
        confirmed_status=BookingStatus.PAYMENT_CONFIRMED,
        active_status=BookingStatus.BOOKED,
    ),
}


def policy_for(kind: BookingKind) -> KindPolicy:
    return POLICIES[kind]


def can_change_payment_status(current: PaymentStatus, target: PaymentStatus) -> bool:
    """PAID is absorbing; every other move is allowed."""
    if current == PaymentStatus.PAID:
        return target == PaymentStatus.PAID
    return True


KIND_PATHS: dict[BookingKind, str] = {
    BookingKind.REGISTRATION: "service-registrations",
    BookingKind.CONSULTATION: "consultations",
}
