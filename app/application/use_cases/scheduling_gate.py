from __future__ import annotations

import logging

from app.application.exceptions import ConflictError, StaleBookingError
from app.application.ports.booking_store import BookingStorePort
from app.domain.entities.booking import Booking
from app.domain.entities.scheduling import GateDecision, ScheduledEvent
from app.domain.entities.status import BookingKind, BookingStatus, policy_for

BOOKING_CREATED = "BOOKING_CREATED"


class SchedulingGate:
    """
    Decides what follows payment. Registrations are done once paid (staff
    assignment activates them). Consultations unlock the scheduling step
    only when payment is paid, and may finish without scheduling.
    """

    def __init__(self, store: BookingStorePort, calcom_link: str, calcom_base_url: str = "https://cal.com") -> None:
        self._store = store
        self._calcom_link = calcom_link.strip("/")
        self._calcom_base_url = calcom_base_url.rstrip("/")
        self._logger = logging.getLogger(__name__)

    def evaluate(self, booking: Booking) -> GateDecision:
        if not booking.is_paid:
            return GateDecision(kind=booking.kind, next_step="payment")

        if booking.kind == BookingKind.REGISTRATION:
            return GateDecision(kind=booking.kind, next_step="done")

        if booking.calendar_booking_uid:
            return GateDecision(kind=booking.kind, next_step="done")

        return GateDecision(
            kind=booking.kind,
            next_step="scheduling",
            scheduling_enabled=True,
            scheduling_link=f"{self._calcom_base_url}/{self._calcom_link}",
            prefill={
                "name": booking.full_name,
                "email": booking.email,
                "notes": f"Consultation Reference: {booking.reference_number}",
            },
        )

    def finish_later(self, booking: Booking) -> GateDecision:
        if not booking.is_paid:
            raise ConflictError("Payment must be confirmed before finishing the booking")
        self._logger.info(
            "Booking finished without scheduling",
            extra={"booking_id": booking.id, "reference": booking.reference_number},
        )
        return GateDecision(kind=booking.kind, next_step="done")

    def record_scheduled(self, event: ScheduledEvent) -> Booking | None:
        """
        Link a calendar booking to a paid consultation.

        Matches by the reference number carried in the event metadata, then
        falls back to the newest payment-confirmed consultation for the
        attendee email that has no calendar booking yet.
        """
        if event.trigger != BOOKING_CREATED:
            self._logger.info("Ignoring calendar event", extra={"trigger": event.trigger})
            return None

        booking = self._match(event)
        if booking is None:
            self._logger.warning("No matching booking for calendar event", extra={"uid": event.uid})
            return None

        if booking.calendar_booking_uid:
            self._logger.info(
                "Booking already linked to calendar event",
                extra={"reference": booking.reference_number, "uid": booking.calendar_booking_uid},
            )
            return booking

        policy = policy_for(booking.kind)
        if not booking.is_paid or policy.is_terminal(booking.booking_status):
            self._logger.warning(
                "Calendar event for booking that cannot be scheduled",
                extra={
                    "reference": booking.reference_number,
                    "payment_status": booking.payment_status.value,
                    "status": booking.booking_status.value,
                },
            )
            return None

        meeting_url = event.metadata.get("videoCallUrl") or event.meeting_url
        try:
            updated = self._store.update(
                booking.id,
                {
                    "calendar_booking_uid": event.uid,
                    "scheduled_at": event.start_time,
                    "meeting_link": meeting_url,
                    "booking_status": BookingStatus.BOOKED,
                },
                expect={"calendar_booking_uid": None, "booking_status": booking.booking_status},
            )
        except StaleBookingError:
            return self._store.get(booking.id)

        self._logger.info(
            "Consultation scheduled",
            extra={"booking_id": booking.id, "reference": booking.reference_number, "uid": event.uid},
        )
        return updated

    def _match(self, event: ScheduledEvent) -> Booking | None:
        reference = event.reference_number or event.metadata.get("referenceNumber")
        if reference:
            booking = self._store.get_by_reference(str(reference))
            if booking is not None and booking.kind == BookingKind.CONSULTATION:
                return booking

        if event.attendee_email:
            for candidate in self._store.find_by_email(BookingKind.CONSULTATION, event.attendee_email):
                if (
                    candidate.booking_status == BookingStatus.PAYMENT_CONFIRMED
                    and candidate.calendar_booking_uid is None
                ):
                    return candidate
        return None
