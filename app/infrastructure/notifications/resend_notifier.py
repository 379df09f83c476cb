from __future__ import annotations

import logging

import httpx

from app.application.ports.notifier import NotifierPort
from app.domain.entities.booking import Booking
from app.domain.entities.status import BookingKind


class ResendNotifier(NotifierPort):
    def __init__(
        self,
        api_key: str,
        from_address: str,
        endpoint: str = "https://api.resend.com/emails",
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_address = from_address
        self._endpoint = endpoint
        self._client = client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def payment_confirmed(self, booking: Booking) -> None:
        if booking.kind == BookingKind.CONSULTATION:
            next_line = "You can now pick a time for your consultation."
        else:
            next_line = "Our team will be assigned to your registration shortly."
        payload = {
            "from": self._from_address,
            "to": [booking.email],
            "subject": f"Payment received - {booking.reference_number}",
            "text": (
                f"Dear {booking.full_name},\n\n"
                f"We have received your payment of {booking.currency} {booking.amount:,} "
                f"for booking {booking.reference_number}.\n{next_line}\n"
            ),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        resp = self._client.post(self._endpoint, json=payload, headers=headers)
        if resp.status_code >= 400:
            self._logger.error(
                "Confirmation email failed",
                extra={"status": resp.status_code, "booking_id": booking.id, "error": resp.text[:200]},
            )
            resp.raise_for_status()
        self._logger.info("Confirmation email sent", extra={"booking_id": booking.id})
