from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from app.application.exceptions import (
    ConflictError,
    DuplicateReferenceError,
    InternalError,
    NotFoundError,
    StaleBookingError,
    ValidationError,
)
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.offering_catalog import OfferingCatalogPort
from app.domain.entities.booking import Booking, BookingPage, PublicStatus
from app.domain.entities.intake import ConsultationIntake, RegistrationIntake, intake_details
from app.domain.entities.offering import Offering
from app.domain.entities.status import BookingKind, BookingStatus, PaymentStatus, policy_for


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingLifecycleUseCase:
    """
    Booking creation, guest status lookup and the staff-side status moves.

    Status changes are written with a compare-and-set on the status that was
    read, so a concurrent payment confirmation is never overwritten.
    """

    def __init__(
        self,
        store: BookingStorePort,
        catalog: OfferingCatalogPort,
        now: Callable[[], datetime] = utc_now,
        reference_attempts: int = 3,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._now = now
        self._reference_attempts = reference_attempts
        self._logger = logging.getLogger(__name__)

    def create(self, intake: RegistrationIntake | ConsultationIntake) -> Booking:
        kind = BookingKind(intake.kind)
        offering = self._resolve_offering(kind, intake)
        policy = policy_for(kind)

        for attempt in range(1, self._reference_attempts + 1):
            now = self._now()
            sequence = self._store.next_sequence(policy.reference_prefix, now.year)
            booking = Booking(
                id=uuid.uuid4().hex,
                kind=kind,
                reference_number=f"{policy.reference_prefix}-{now.year}-{sequence:04d}",
                offering_id=offering.offering_id,
                full_name=intake.full_name,
                email=str(intake.email),
                phone_number=intake.phone_number,
                amount=offering.fee,
                currency=offering.currency,
                details=intake_details(intake),
                created_at=now,
                updated_at=now,
            )
            try:
                created = self._store.insert(booking)
            except DuplicateReferenceError:
                self._logger.warning(
                    "Reference collision, retrying",
                    extra={"reference": booking.reference_number, "attempt": attempt},
                )
                continue

            self._logger.info(
                "Booking created",
                extra={"booking_id": created.id, "reference": created.reference_number, "kind": kind.value},
            )
            return created

        raise InternalError("Failed to create booking")

    def get_status(self, reference_number: str, email: str, kind: BookingKind | None = None) -> PublicStatus:
        """
        Guest-safe lookup. Reference and email must both match; every miss
        raises the same NotFoundError so callers cannot tell which one failed.
        """
        booking = self._store.get_by_reference(reference_number.strip())
        if (
            booking is None
            or booking.email.strip().lower() != email.strip().lower()
            or (kind is not None and booking.kind != kind)
        ):
            self._logger.warning("Guest status lookup miss", extra={"reference": reference_number})
            raise NotFoundError("Booking not found")

        return PublicStatus(
            reference_number=booking.reference_number,
            kind=booking.kind,
            booking_status=booking.booking_status,
            payment_status=booking.payment_status,
            created_at=booking.created_at,
            scheduled_at=booking.scheduled_at,
            meeting_link=booking.meeting_link,
        )

    def get(self, booking_id: str, kind: BookingKind | None = None) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None or (kind is not None and booking.kind != kind):
            raise NotFoundError("Booking not found")
        return booking

    def list(
        self,
        kind: BookingKind,
        page: int = 1,
        limit: int = 20,
        booking_status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        search: str | None = None,
    ) -> BookingPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        items, total = self._store.list_bookings(
            kind,
            offset=(page - 1) * limit,
            limit=limit,
            booking_status=booking_status,
            payment_status=payment_status,
            search=search,
        )
        return BookingPage(items=items, page=page, limit=limit, total=total)

    def assign(self, booking_id: str, staff_id: str, kind: BookingKind | None = None) -> Booking:
        """
        Assign a staff member and activate the booking.

        Assignment activates a booking that is still awaiting activation even
        when its payment has not cleared: staff may start work before payment.
        This is the one sanctioned exception to "paid before advancing".
        """
        for _ in range(2):
            booking = self.get(booking_id, kind)
            policy = policy_for(booking.kind)
            changes: dict[str, object] = {"assigned_staff_id": staff_id}
            if booking.booking_status in policy.awaiting_activation:
                changes["booking_status"] = policy.active_status
            try:
                updated = self._store.update(
                    booking_id, changes, expect={"booking_status": booking.booking_status}
                )
            except StaleBookingError:
                continue
            if updated is None:
                raise NotFoundError("Booking not found")

            if updated.booking_status != booking.booking_status and not updated.is_paid:
                self._logger.info(
                    "Booking activated by assignment before payment",
                    extra={"booking_id": booking_id, "reference": updated.reference_number},
                )
            self._logger.info(
                "Booking assigned",
                extra={"booking_id": booking_id, "staff_id": staff_id, "status": updated.booking_status.value},
            )
            return updated

        raise InternalError("Failed to assign booking")

    def update_status(
        self,
        booking_id: str,
        status: BookingStatus | str,
        notes: str | None = None,
        kind: BookingKind | None = None,
    ) -> Booking:
        booking = self.get(booking_id, kind)
        policy = policy_for(booking.kind)

        try:
            target = BookingStatus(status)
        except ValueError:
            raise ValidationError("Unknown booking status", {"status": f"Unknown status '{status}'"}) from None
        if target not in policy.allowed:
            raise ValidationError(
                f"Status '{target.value}' is not valid for {booking.kind.value} bookings",
                {"status": "Not allowed for this booking kind"},
            )
        if policy.is_terminal(booking.booking_status) and target != booking.booking_status:
            raise ConflictError(f"Booking is already {booking.booking_status.value}")
        if (
            policy.is_pre_payment(booking.booking_status)
            and not booking.is_paid
            and target not in (BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED)
        ):
            raise ConflictError("Payment must be confirmed before the booking can advance")

        changes: dict[str, object] = {"booking_status": target}
        if notes is not None:
            changes["staff_notes"] = notes
        try:
            updated = self._store.update(booking_id, changes, expect={"booking_status": booking.booking_status})
        except StaleBookingError:
            raise ConflictError("Booking was changed by another request, please retry") from None
        if updated is None:
            raise NotFoundError("Booking not found")

        self._logger.info(
            "Booking status updated",
            extra={"booking_id": booking_id, "status": target.value, "previous": booking.booking_status.value},
        )
        return updated

    def cancel(self, booking_id: str, kind: BookingKind | None = None) -> Booking:
        return self.update_status(booking_id, BookingStatus.CANCELLED, kind=kind)

    def _resolve_offering(self, kind: BookingKind, intake: RegistrationIntake | ConsultationIntake) -> Offering:
        if isinstance(intake, RegistrationIntake):
            offering = self._catalog.get_offering(intake.offering_id)
        else:
            offering = self._catalog.default_offering(kind)

        if offering is None or not offering.is_active or offering.kind != kind:
            self._logger.warning(
                "Offering not found or inactive",
                extra={"offering_id": getattr(intake, "offering_id", None), "kind": kind.value},
            )
            raise NotFoundError("Service not found or inactive")
        return offering
