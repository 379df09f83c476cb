from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from app.application.exceptions import (
    AlreadyPaidError,
    ConflictError,
    GatewayError,
    InternalError,
    NotFoundError,
    PaymentVerificationError,
    StaleBookingError,
    WebhookSignatureError,
)
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.notifier import NotifierPort
from app.application.ports.offering_catalog import OfferingCatalogPort
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.use_cases.booking_lifecycle import utc_now
from app.domain.entities.booking import Booking
from app.domain.entities.payment import PaymentInitiation, PaymentSession, PaymentVerification
from app.domain.entities.status import BookingKind, PaymentStatus, policy_for

_UNSETTLED = (PaymentStatus.PENDING, PaymentStatus.FAILED)


class PaymentUseCase:
    """
    Bridges bookings and the payment gateway.

    `initiate` stores the session tracker on the booking before handing the
    checkout URL out. `confirm` re-verifies the tracker with the gateway and
    flips the booking to paid with a compare-and-set on the payment status,
    so only one caller ever performs the transition and its side effects.
    """

    def __init__(
        self,
        store: BookingStorePort,
        catalog: OfferingCatalogPort,
        gateway: PaymentGatewayPort,
        notifier: NotifierPort,
        verify_with_gateway: bool = True,
        tracker_write_attempts: int = 2,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._gateway = gateway
        self._notifier = notifier
        self._verify_with_gateway = verify_with_gateway
        self._tracker_write_attempts = max(tracker_write_attempts, 1)
        self._now = now
        self._logger = logging.getLogger(__name__)

    def initiate(
        self,
        booking_id: str,
        return_url: str,
        cancel_url: str,
        kind: BookingKind | None = None,
    ) -> PaymentInitiation:
        self._logger.info("Initiating payment", extra={"booking_id": booking_id})
        booking = self._load(booking_id, kind)

        if booking.is_paid:
            self._logger.warning("Booking already paid, cannot initiate payment", extra={"booking_id": booking_id})
            raise AlreadyPaidError("Payment already completed")
        if policy_for(booking.kind).is_terminal(booking.booking_status):
            raise ConflictError(f"Booking is {booking.booking_status.value}")

        offering = self._catalog.get_offering(booking.offering_id)
        if offering is None:
            raise NotFoundError("Service not found or inactive")

        try:
            session = self._gateway.create_checkout_session(
                amount=offering.fee,
                currency=offering.currency,
                order_id=booking.id,
                return_url=return_url,
                cancel_url=cancel_url,
                metadata={"type": booking.kind.value, "reference_number": booking.reference_number},
            )
        except GatewayError:
            raise
        except Exception as e:
            self._logger.error("Checkout session creation failed", extra={"booking_id": booking_id, "error": str(e)})
            raise GatewayError("Failed to initiate payment") from e

        self._store_tracker(booking, session)

        self._logger.info(
            "Payment initiated",
            extra={"booking_id": booking_id, "tracker": session.tracker_token, "amount": session.amount},
        )
        return PaymentInitiation(
            checkout_url=session.checkout_url,
            tracker_token=session.tracker_token,
            amount=session.amount,
            currency=session.currency,
            order_id=session.order_id,
            environment=session.environment,
        )

    def confirm(self, booking_id: str, tracker_token: str, kind: BookingKind | None = None) -> Booking:
        self._logger.info("Confirming payment", extra={"booking_id": booking_id, "tracker": tracker_token})

        for _ in range(2):
            booking = self._load(booking_id, kind)
            if booking.is_paid:
                self._logger.info("Booking already paid, returning existing record", extra={"booking_id": booking_id})
                return booking
            if not booking.tracker_token:
                raise ConflictError("Payment has not been initiated for this booking")

            verification = self._verify(booking, tracker_token)

            policy = policy_for(booking.kind)
            changes: dict[str, object] = {
                "payment_status": PaymentStatus.PAID,
                "tracker_token": tracker_token,
                "transaction_ref": verification.reference if verification else None,
            }
            if policy.is_pre_payment(booking.booking_status):
                changes["booking_status"] = policy.confirmed_status

            try:
                updated = self._store.update(
                    booking_id,
                    changes,
                    expect={"payment_status": _UNSETTLED, "booking_status": booking.booking_status},
                )
            except StaleBookingError:
                self._logger.info("Booking changed during confirmation, re-reading", extra={"booking_id": booking_id})
                continue
            if updated is None:
                raise NotFoundError("Booking not found")

            self._logger.info(
                "Payment confirmed",
                extra={
                    "booking_id": booking_id,
                    "reference": updated.reference_number,
                    "transaction": updated.transaction_ref,
                },
            )
            return self._send_confirmation(updated)

        booking = self._load(booking_id, kind)
        if booking.is_paid:
            return booking
        raise ConflictError("Booking was changed by another request, please retry")

    def handle_gateway_webhook(self, tracker_token: str, state: str, signature: str | None) -> Booking | None:
        if not self._gateway.verify_webhook_signature(tracker_token, signature):
            self._logger.warning("Rejected payment webhook with bad signature", extra={"tracker": tracker_token})
            raise WebhookSignatureError("Invalid webhook signature")

        booking = self._store.find_by_tracker(tracker_token)
        if booking is None:
            self._logger.warning("Payment webhook for unknown tracker", extra={"tracker": tracker_token})
            return None

        normalized = state.strip().upper()
        if normalized == "PAID":
            return self.confirm(booking.id, tracker_token)
        if normalized == "FAILED":
            return self.mark_failed(booking)

        self._logger.info("Ignoring payment webhook state", extra={"tracker": tracker_token, "state": normalized})
        return booking

    def mark_failed(self, booking: Booking) -> Booking:
        """Record a failed session. A paid booking is never touched."""
        if booking.payment_status != PaymentStatus.PENDING:
            return booking
        try:
            updated = self._store.update(
                booking.id,
                {"payment_status": PaymentStatus.FAILED},
                expect={"payment_status": PaymentStatus.PENDING, "tracker_token": booking.tracker_token},
            )
        except StaleBookingError:
            return self._load(booking.id, None)
        if updated is None:
            raise NotFoundError("Booking not found")
        self._logger.info("Payment session failed", extra={"booking_id": booking.id, "tracker": booking.tracker_token})
        return updated

    def _load(self, booking_id: str, kind: BookingKind | None) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None or (kind is not None and booking.kind != kind):
            self._logger.warning("Booking not found", extra={"booking_id": booking_id})
            raise NotFoundError("Booking not found")
        return booking

    def _store_tracker(self, booking: Booking, session: PaymentSession) -> None:
        """
        Persist the new tracker before the checkout URL leaves this service.
        The previous tracker is only replaced once the gateway call succeeded.
        """
        changes = {
            "tracker_token": session.tracker_token,
            "amount": session.amount,
            "currency": session.currency,
            "payment_status": PaymentStatus.PENDING,
        }
        last_error: Exception | None = None
        for attempt in range(1, self._tracker_write_attempts + 1):
            try:
                updated = self._store.update(booking.id, changes, expect={"payment_status": _UNSETTLED})
            except StaleBookingError:
                current = self._store.get(booking.id)
                if current is not None and current.is_paid:
                    raise AlreadyPaidError("Payment already completed") from None
                last_error = None
                continue
            except Exception as e:
                last_error = e
                self._logger.warning(
                    "Failed to store tracker, retrying",
                    extra={"booking_id": booking.id, "tracker": session.tracker_token, "attempt": attempt, "error": str(e)},
                )
                continue
            if updated is None:
                raise NotFoundError("Booking not found")
            return

        self._logger.error(
            "Failed to update booking with tracker",
            extra={"booking_id": booking.id, "tracker": session.tracker_token, "error": str(last_error)},
        )
        raise InternalError("Failed to update booking")

    def _verify(self, booking: Booking, tracker_token: str) -> PaymentVerification | None:
        if not self._verify_with_gateway:
            if tracker_token != booking.tracker_token:
                raise PaymentVerificationError("Payment not confirmed. Tracker does not match this booking")
            return None

        verification = self._gateway.verify_payment(tracker_token)
        if not verification.is_paid:
            self._logger.warning(
                "Payment verification failed",
                extra={"booking_id": booking.id, "tracker": tracker_token, "state": verification.state},
            )
            raise PaymentVerificationError(f"Payment not confirmed. Status: {verification.state}")

        if verification.order_id is not None:
            if verification.order_id != booking.id:
                raise PaymentVerificationError("Payment not confirmed. Tracker belongs to another order")
        elif tracker_token != booking.tracker_token:
            raise PaymentVerificationError("Payment not confirmed. Tracker does not match this booking")

        if verification.amount is not None and verification.amount != booking.amount:
            self._logger.error(
                "Paid amount does not match booking amount",
                extra={"booking_id": booking.id, "paid": verification.amount, "expected": booking.amount},
            )
            raise PaymentVerificationError("Payment not confirmed. Amount mismatch")
        return verification

    def _send_confirmation(self, booking: Booking) -> Booking:
        if booking.confirmation_sent_at is not None:
            return booking
        try:
            self._notifier.payment_confirmed(booking)
        except Exception as e:
            self._logger.error("Payment confirmation notification failed", extra={"booking_id": booking.id, "error": str(e)})
            return booking

        try:
            stamped = self._store.update(
                booking.id, {"confirmation_sent_at": self._now()}, expect={"confirmation_sent_at": None}
            )
        except StaleBookingError:
            stamped = self._store.get(booking.id)
        return stamped or booking
