from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from app.domain.entities.booking import Booking
from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus


class BookingStorePort(ABC):
    @abstractmethod
    def get(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_reference(self, reference_number: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_tracker(self, tracker_token: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_email(self, kind: BookingKind, email: str) -> list[Booking]:
        """Bookings of a kind for a contact email, newest first."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, booking: Booking) -> Booking:
        """Persist a new booking. Raises DuplicateReferenceError if the reference is taken."""
        raise NotImplementedError

    @abstractmethod
    def update(self, booking_id: str, changes: dict[str, Any], expect: dict[str, Any] | None = None) -> Booking | None:
        """
        Apply field changes atomically and return the updated booking, or None
        if the booking does not exist. When `expect` is given, every listed
        field must currently hold one of the given values (a value or a
        tuple/set of values), otherwise StaleBookingError is raised and
        nothing is written.
        """
        raise NotImplementedError

    @abstractmethod
    def next_sequence(self, prefix: str, year: int) -> int:
        """Allocate the next reference sequence number for a prefix and year."""
        raise NotImplementedError

    @abstractmethod
    def list_bookings(
        self,
        kind: BookingKind,
        offset: int,
        limit: int,
        booking_status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        search: str | None = None,
    ) -> tuple[list[Booking], int]:
        """Return one page of bookings (newest first) and the total match count."""
        raise NotImplementedError
