from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable

from app.application.exceptions import DuplicateReferenceError, StaleBookingError
from app.application.ports.booking_store import BookingStorePort
from app.domain.entities.booking import Booking
from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus, can_change_payment_status


class MemoryBookingStore(BookingStorePort):
    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._sequences: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, booking_id: str) -> Booking | None:
        return self._bookings.get(booking_id)

    def get_by_reference(self, reference_number: str) -> Booking | None:
        for booking in self._bookings.values():
            if booking.reference_number == reference_number:
                return booking
        return None

    def find_by_tracker(self, tracker_token: str) -> Booking | None:
        for booking in self._bookings.values():
            if booking.tracker_token == tracker_token:
                return booking
        return None

    def find_by_email(self, kind: BookingKind, email: str) -> list[Booking]:
        wanted = email.strip().lower()
        matches = [b for b in self._bookings.values() if b.kind == kind and b.email.lower() == wanted]
        return sort_newest_first(matches)

    def insert(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise DuplicateReferenceError(f"Booking id {booking.id} already exists")
            if any(b.reference_number == booking.reference_number for b in self._bookings.values()):
                raise DuplicateReferenceError(f"Reference {booking.reference_number} already exists")
            self._bookings[booking.id] = booking
            return booking

    def update(self, booking_id: str, changes: dict[str, Any], expect: dict[str, Any] | None = None) -> Booking | None:
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                return None
            check_expectations(current, expect)
            updated = apply_changes(current, changes)
            self._bookings[booking_id] = updated
            return updated

    def next_sequence(self, prefix: str, year: int) -> int:
        key = f"{prefix}-{year}"
        with self._lock:
            value = self._sequences.get(key, 0) + 1
            self._sequences[key] = value
            return value

    def list_bookings(
        self,
        kind: BookingKind,
        offset: int,
        limit: int,
        booking_status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        search: str | None = None,
    ) -> tuple[list[Booking], int]:
        matches = filter_bookings(self._bookings.values(), kind, booking_status, payment_status, search)
        return matches[offset : offset + limit], len(matches)


def check_expectations(booking: Booking, expect: dict[str, Any] | None) -> None:
    for name, wanted in (expect or {}).items():
        allowed = wanted if isinstance(wanted, (tuple, set, frozenset, list)) else (wanted,)
        if getattr(booking, name) not in allowed:
            raise StaleBookingError(f"Booking {booking.id} field {name} changed")


def apply_changes(booking: Booking, changes: dict[str, Any]) -> Booking:
    target = changes.get("payment_status")
    if target is not None and not can_change_payment_status(booking.payment_status, target):
        raise StaleBookingError(f"Booking {booking.id} is already {booking.payment_status.value}")
    stamped = dict(changes)
    stamped.setdefault("updated_at", datetime.now(timezone.utc))
    return replace(booking, **stamped)


def sort_newest_first(bookings: Iterable[Booking]) -> list[Booking]:
    return sorted(bookings, key=lambda b: (b.created_at, b.reference_number), reverse=True)


def filter_bookings(
    bookings: Iterable[Booking],
    kind: BookingKind,
    booking_status: BookingStatus | None,
    payment_status: PaymentStatus | None,
    search: str | None,
) -> list[Booking]:
    needle = (search or "").strip().lower()
    result = []
    for booking in bookings:
        if booking.kind != kind:
            continue
        if booking_status is not None and booking.booking_status != booking_status:
            continue
        if payment_status is not None and booking.payment_status != payment_status:
            continue
        if needle and needle not in booking.full_name.lower() and needle not in booking.email.lower():
            continue
        result.append(booking)
    return sort_newest_first(result)
