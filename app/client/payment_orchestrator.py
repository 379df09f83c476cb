from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

from app.client.api_client import BookingApiClient
from app.client.callback import PAYMENT_CANCELLED, PAYMENT_SUCCESS
from app.client.errors import ApiError, Cancelled, ClientError, PopupBlocked
from app.client.ports import MessageChannel, PopupHandle, PopupOpener, ScreenGeometry, WindowMessage

POPUP_NAME = "payment-checkout"
POPUP_WIDTH = 500
POPUP_HEIGHT = 700
POLL_INTERVAL_SECONDS = 0.5


class PaymentPhase(str, Enum):
    IDLE = "idle"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ERROR = "error"


def popup_features(screen: ScreenGeometry, width: int = POPUP_WIDTH, height: int = POPUP_HEIGHT) -> str:
    left = screen.x + (screen.width - width) // 2
    top = screen.y + (screen.height - height) // 2
    return f"width={width},height={height},left={left},top={top},toolbar=no,menubar=no"


class PaymentOrchestrator:
    """
    Drives one booking through hosted checkout in a popup.

    While awaiting payment two callbacks race: the message listener and the
    popup-closed poller. Whichever acts first sets `_settled`; the other one
    sees it and does nothing. A success message always wins over a popup
    that closes right after posting it.
    """

    def __init__(
        self,
        api: BookingApiClient,
        kind_path: str,
        booking_id: str,
        opener: PopupOpener,
        channel: MessageChannel,
        origin: str,
        screen: ScreenGeometry | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        on_change: Callable[[PaymentPhase], None] | None = None,
    ) -> None:
        self._api = api
        self._kind_path = kind_path
        self._booking_id = booking_id
        self._opener = opener
        self._channel = channel
        self._origin = origin
        self._screen = screen or ScreenGeometry()
        self._poll_interval = poll_interval
        self._on_change = on_change
        self._logger = logging.getLogger(__name__)

        self.phase = PaymentPhase.IDLE
        self.error: ClientError | None = None
        self.booking: dict[str, Any] | None = None
        self.checkout_url: str | None = None
        self.tracker_token: str | None = None
        self.is_processing = False

        self._popup: PopupHandle | None = None
        self._poller: asyncio.Task | None = None
        self._confirm_task: asyncio.Task | None = None
        self._listening = False
        self._settled = False

    @property
    def popup(self) -> PopupHandle | None:
        return self._popup

    @property
    def is_polling(self) -> bool:
        return self._poller is not None and not self._poller.done()

    @property
    def is_listening(self) -> bool:
        return self._listening

    async def begin(self, return_url: str, cancel_url: str) -> PaymentPhase:
        """Create the checkout session once, then open it."""
        if self.is_processing or self.phase in (
            PaymentPhase.AWAITING_PAYMENT,
            PaymentPhase.CONFIRMING,
            PaymentPhase.CONFIRMED,
        ):
            return self.phase
        if self.checkout_url:
            return self.retry()

        self.is_processing = True
        try:
            session = await self._api.initiate_payment(self._kind_path, self._booking_id, return_url, cancel_url)
        except ClientError as e:
            self._logger.warning("Payment initiation failed", extra={"booking_id": self._booking_id, "error": e.code})
            self._fail(e)
            return self.phase
        finally:
            self.is_processing = False

        self.checkout_url = session["checkoutUrl"]
        self.tracker_token = session.get("trackerToken")
        return self.open_checkout()

    def open_checkout(self) -> PaymentPhase:
        if not self.checkout_url:
            raise RuntimeError("No checkout session to open")

        self._release()
        popup = self._opener.open(self.checkout_url, POPUP_NAME, popup_features(self._screen))
        if popup is None:
            self._logger.warning("Payment popup blocked", extra={"booking_id": self._booking_id})
            self._fail(PopupBlocked())
            return self.phase

        self._popup = popup
        self._settled = False
        self.error = None
        self._set_phase(PaymentPhase.AWAITING_PAYMENT)
        self._channel.add_listener(self._on_message)
        self._listening = True
        self._poller = asyncio.get_running_loop().create_task(self._poll_popup())
        return self.phase

    def retry(self) -> PaymentPhase:
        """Reopen the cached checkout session. Never creates a new one."""
        if self.phase in (PaymentPhase.AWAITING_PAYMENT, PaymentPhase.CONFIRMING, PaymentPhase.CONFIRMED):
            return self.phase
        if not self.checkout_url:
            return self.phase
        return self.open_checkout()

    async def wait(self) -> PaymentPhase:
        """Wait until the current attempt settles (or nothing is pending)."""
        while True:
            if self.phase == PaymentPhase.AWAITING_PAYMENT:
                task = self._poller
            elif self.phase == PaymentPhase.CONFIRMING:
                task = self._confirm_task
            else:
                task = None
            if task is None or task.done():
                return self.phase
            await asyncio.wait({task})

    def close(self) -> None:
        """Tear down every resource this orchestrator holds, in any phase."""
        if self._confirm_task is not None and not self._confirm_task.done():
            self._confirm_task.cancel()
        self._confirm_task = None
        self._settled = True
        self._release()
        if self.phase in (PaymentPhase.AWAITING_PAYMENT, PaymentPhase.CONFIRMING):
            self.error = Cancelled()
            self._set_phase(PaymentPhase.CANCELLED)

    def _on_message(self, message: WindowMessage) -> None:
        if message.origin != self._origin:
            return
        if self._settled or self.phase != PaymentPhase.AWAITING_PAYMENT:
            return

        data = message.data if isinstance(message.data, dict) else {}
        kind = data.get("type")
        if kind == PAYMENT_SUCCESS:
            self._settled = True
            self._stop_poller()
            self._set_phase(PaymentPhase.CONFIRMING)
            tracker = data.get("tracker") or self.tracker_token
            self._confirm_task = asyncio.get_running_loop().create_task(self._confirm(tracker))
        elif kind == PAYMENT_CANCELLED:
            self._settled = True
            self._cancel()

    async def _poll_popup(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if self._settled or self.phase != PaymentPhase.AWAITING_PAYMENT:
                return
            if self._popup is None or self._popup.closed:
                self._settled = True
                self._cancel()
                return

    async def _confirm(self, tracker: str | None) -> None:
        if not tracker:
            self._release()
            self._fail(ApiError("PAYMENT_NOT_VERIFIED", "No payment tracker received"))
            return
        try:
            booking = await self._api.confirm_payment(self._kind_path, self._booking_id, tracker)
        except ClientError as e:
            self._logger.warning("Payment confirmation failed", extra={"booking_id": self._booking_id, "error": e.code})
            self._release()
            self._fail(e)
            return

        self.booking = booking
        self.tracker_token = tracker
        self._release()
        self._set_phase(PaymentPhase.CONFIRMED)
        self._logger.info("Payment confirmed", extra={"booking_id": self._booking_id})

    def _cancel(self) -> None:
        self._release()
        self.error = Cancelled()
        self._set_phase(PaymentPhase.CANCELLED)
        self._logger.info("Payment cancelled", extra={"booking_id": self._booking_id})

    def _fail(self, error: ClientError) -> None:
        self.error = error
        self._set_phase(PaymentPhase.ERROR)

    def _release(self) -> None:
        self._stop_poller()
        if self._listening:
            self._channel.remove_listener(self._on_message)
            self._listening = False
        if self._popup is not None:
            if not self._popup.closed:
                self._popup.close()
            self._popup = None

    def _stop_poller(self) -> None:
        poller = self._poller
        self._poller = None
        if poller is None or poller.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if poller is not current:
            poller.cancel()

    def _set_phase(self, phase: PaymentPhase) -> None:
        self.phase = phase
        if self._on_change is not None:
            self._on_change(phase)
