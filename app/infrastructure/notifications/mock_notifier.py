import logging

from app.application.ports.notifier import NotifierPort
from app.domain.entities.booking import Booking


class MockNotifier(NotifierPort):
    def __init__(self) -> None:
        self.sent: list[str] = []
        self._logger = logging.getLogger(__name__)

    def payment_confirmed(self, booking: Booking) -> None:
        self.sent.append(booking.id)
        self._logger.info(
            "Payment confirmation (mock)",
            extra={"booking_id": booking.id, "reference": booking.reference_number},
        )
