"""
Tests for payment initiation, confirmation and gateway webhooks.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.application.exceptions import (
    AlreadyPaidError,
    ConflictError,
    GatewayError,
    InternalError,
    PaymentVerificationError,
    WebhookSignatureError,
)
from app.application.use_cases.booking_lifecycle import BookingLifecycleUseCase
from app.application.use_cases.payment import PaymentUseCase
from app.domain.entities.status import BookingStatus, PaymentStatus
from app.infrastructure.catalog.catalog_data import build_catalog
from app.infrastructure.catalog.offering_catalog_store import OfferingCatalogStore
from app.infrastructure.payments.webhook_verify import sign_tracker
from app.infrastructure.store.memory_store import MemoryBookingStore

RETURN_URL = "https://example.com/consultation/payment-callback"
CANCEL_URL = "https://example.com/consultation/payment-callback?cancelled=true"
WEBHOOK_SECRET = "test-webhook-secret"


def _initiate(payments, booking):
    return payments.initiate(booking.id, RETURN_URL, CANCEL_URL)


def test_pay_then_confirm_twice_is_idempotent(lifecycle, payments, gateway, notifier, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)

    initiation = _initiate(payments, booking)
    assert initiation.checkout_url
    assert initiation.amount == 50000
    assert initiation.currency == "PKR"
    assert initiation.order_id == booking.id
    assert store.get(booking.id).tracker_token == initiation.tracker_token

    gateway.complete(initiation.tracker_token)
    first = payments.confirm(booking.id, initiation.tracker_token)
    second = payments.confirm(booking.id, initiation.tracker_token)

    assert first.payment_status == PaymentStatus.PAID
    assert first.booking_status == BookingStatus.PAYMENT_CONFIRMED
    assert first.transaction_ref is not None
    assert first.confirmation_sent_at == datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
    assert second == first
    assert notifier.sent == [booking.id]


def test_initiate_on_paid_booking_is_rejected(lifecycle, payments, gateway, store, registration_intake):
    booking = lifecycle.create(registration_intake)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)
    payments.confirm(booking.id, initiation.tracker_token)
    sessions_before = len(gateway.sessions)

    with pytest.raises(ConflictError) as exc:
        _initiate(payments, booking)

    assert isinstance(exc.value, AlreadyPaidError)
    assert len(gateway.sessions) == sessions_before
    assert store.get(booking.id).tracker_token == initiation.tracker_token


def test_checkout_amount_is_catalog_price_at_initiation(store, gateway, notifier, lifecycle, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    repriced = OfferingCatalogStore(catalog=build_catalog(consultation_fee=60000))
    payments = PaymentUseCase(store=store, catalog=repriced, gateway=gateway, notifier=notifier)

    initiation = _initiate(payments, booking)

    assert initiation.amount == 60000
    assert gateway.sessions[initiation.tracker_token].amount == 60000
    assert store.get(booking.id).amount == 60000


def test_confirm_before_initiate_is_conflict(lifecycle, payments, consultation_intake):
    booking = lifecycle.create(consultation_intake)

    with pytest.raises(ConflictError):
        payments.confirm(booking.id, "track_made_up")


def test_confirm_unpaid_session_leaves_state_unchanged(lifecycle, payments, store, notifier, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    before = store.get(booking.id)

    with pytest.raises(PaymentVerificationError):
        payments.confirm(booking.id, initiation.tracker_token)

    assert store.get(booking.id) == before
    assert notifier.sent == []


def test_confirm_with_tracker_of_other_booking_is_rejected(lifecycle, payments, gateway, store, consultation_intake):
    first = lifecycle.create(consultation_intake)
    second = lifecycle.create(consultation_intake)
    _initiate(payments, first)
    other = _initiate(payments, second)
    gateway.complete(other.tracker_token)

    with pytest.raises(PaymentVerificationError):
        payments.confirm(first.id, other.tracker_token)

    assert store.get(first.id).payment_status == PaymentStatus.PENDING


def test_confirm_rejects_amount_mismatch(lifecycle, payments, gateway, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.sessions[initiation.tracker_token] = replace(gateway.sessions[initiation.tracker_token], amount=1)
    gateway.complete(initiation.tracker_token)

    with pytest.raises(PaymentVerificationError):
        payments.confirm(booking.id, initiation.tracker_token)

    assert store.get(booking.id).payment_status == PaymentStatus.PENDING


def test_gateway_failure_keeps_previous_tracker(lifecycle, payments, gateway, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.fail_create = True

    with pytest.raises(GatewayError):
        _initiate(payments, booking)

    assert store.get(booking.id).tracker_token == initiation.tracker_token


def test_gateway_verify_failure_leaves_booking_pending(lifecycle, payments, gateway, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)
    gateway.fail_verify = True

    with pytest.raises(GatewayError):
        payments.confirm(booking.id, initiation.tracker_token)

    assert store.get(booking.id).payment_status == PaymentStatus.PENDING


class FlakyTrackerStore(MemoryBookingStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.tracker_writes = 0

    def update(self, booking_id, changes, expect=None):
        if "tracker_token" in changes and "payment_status" in changes and changes["payment_status"] == PaymentStatus.PENDING:
            self.tracker_writes += 1
            if self.failures > 0:
                self.failures -= 1
                raise OSError("disk full")
        return super().update(booking_id, changes, expect)


@pytest.mark.parametrize("failures,succeeds", [(1, True), (2, False)])
def test_tracker_write_is_retried_before_exposing_checkout(catalog, gateway, notifier, consultation_intake, failures, succeeds):
    store = FlakyTrackerStore(failures=failures)
    booking = BookingLifecycleUseCase(store=store, catalog=catalog).create(consultation_intake)
    payments = PaymentUseCase(store=store, catalog=catalog, gateway=gateway, notifier=notifier, tracker_write_attempts=2)

    if succeeds:
        initiation = _initiate(payments, booking)
        assert store.get(booking.id).tracker_token == initiation.tracker_token
    else:
        with pytest.raises(InternalError):
            _initiate(payments, booking)
        assert store.get(booking.id).tracker_token is None
    assert store.tracker_writes == 2


class RacingStore(MemoryBookingStore):
    """Lets another request flip the booking to paid just before our write lands."""

    def __init__(self) -> None:
        super().__init__()
        self.raced = False

    def update(self, booking_id, changes, expect=None):
        if changes.get("payment_status") == PaymentStatus.PAID and not self.raced:
            self.raced = True
            super().update(
                booking_id,
                {"payment_status": PaymentStatus.PAID, "booking_status": BookingStatus.PAYMENT_CONFIRMED},
            )
        return super().update(booking_id, changes, expect)


def test_losing_the_confirmation_race_has_no_side_effects(catalog, gateway, notifier, consultation_intake):
    store = RacingStore()
    booking = BookingLifecycleUseCase(store=store, catalog=catalog).create(consultation_intake)
    payments = PaymentUseCase(store=store, catalog=catalog, gateway=gateway, notifier=notifier)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)

    result = payments.confirm(booking.id, initiation.tracker_token)

    assert result.payment_status == PaymentStatus.PAID
    assert notifier.sent == []


def test_notifier_failure_does_not_undo_payment(lifecycle, store, catalog, gateway, consultation_intake):
    class BrokenNotifier:
        def payment_confirmed(self, booking):
            raise RuntimeError("smtp down")

    payments = PaymentUseCase(store=store, catalog=catalog, gateway=gateway, notifier=BrokenNotifier())
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)

    confirmed = payments.confirm(booking.id, initiation.tracker_token)

    assert confirmed.payment_status == PaymentStatus.PAID
    assert confirmed.confirmation_sent_at is None


def test_confirm_without_gateway_check_requires_stored_tracker(lifecycle, store, catalog, gateway, notifier, consultation_intake):
    payments = PaymentUseCase(store=store, catalog=catalog, gateway=gateway, notifier=notifier, verify_with_gateway=False)
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)

    with pytest.raises(PaymentVerificationError):
        payments.confirm(booking.id, "track_someone_else")

    confirmed = payments.confirm(booking.id, initiation.tracker_token)
    assert confirmed.payment_status == PaymentStatus.PAID
    assert confirmed.transaction_ref is None


def test_payment_after_assignment_keeps_active_status(lifecycle, payments, gateway, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    lifecycle.assign(booking.id, "staff-1")
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)

    confirmed = payments.confirm(booking.id, initiation.tracker_token)

    assert confirmed.payment_status == PaymentStatus.PAID
    assert confirmed.booking_status == BookingStatus.BOOKED


def test_initiate_on_cancelled_booking_is_conflict(lifecycle, payments, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    lifecycle.cancel(booking.id)

    with pytest.raises(ConflictError):
        _initiate(payments, booking)


def test_webhook_paid_confirms_booking(lifecycle, payments, gateway, store, notifier, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)
    signature = sign_tracker(initiation.tracker_token, WEBHOOK_SECRET)

    payments.handle_gateway_webhook(initiation.tracker_token, "PAID", signature)
    payments.handle_gateway_webhook(initiation.tracker_token, "PAID", signature)

    assert store.get(booking.id).payment_status == PaymentStatus.PAID
    assert notifier.sent == [booking.id]


def test_webhook_with_bad_signature_is_rejected(lifecycle, payments, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)

    with pytest.raises(WebhookSignatureError):
        payments.handle_gateway_webhook(initiation.tracker_token, "PAID", "deadbeef")
    with pytest.raises(WebhookSignatureError):
        payments.handle_gateway_webhook(initiation.tracker_token, "PAID", None)

    assert store.get(booking.id).payment_status == PaymentStatus.PENDING


def test_failed_session_is_recoverable(lifecycle, payments, gateway, store, consultation_intake):
    """FAILED applies to one session; a new initiation resets the booking to pending."""
    booking = lifecycle.create(consultation_intake)
    failed = _initiate(payments, booking)
    gateway.fail(failed.tracker_token)

    payments.handle_gateway_webhook(failed.tracker_token, "FAILED", sign_tracker(failed.tracker_token, WEBHOOK_SECRET))
    assert store.get(booking.id).payment_status == PaymentStatus.FAILED

    retry = _initiate(payments, booking)
    assert store.get(booking.id).payment_status == PaymentStatus.PENDING

    gateway.complete(retry.tracker_token)
    confirmed = payments.confirm(booking.id, retry.tracker_token)
    assert confirmed.payment_status == PaymentStatus.PAID


def test_failed_webhook_never_regresses_paid_booking(lifecycle, payments, gateway, store, consultation_intake):
    booking = lifecycle.create(consultation_intake)
    initiation = _initiate(payments, booking)
    gateway.complete(initiation.tracker_token)
    payments.confirm(booking.id, initiation.tracker_token)

    payments.handle_gateway_webhook(
        initiation.tracker_token, "FAILED", sign_tracker(initiation.tracker_token, WEBHOOK_SECRET)
    )

    assert store.get(booking.id).payment_status == PaymentStatus.PAID


def test_webhook_for_unknown_tracker_is_ignored(payments):
    tracker = "track_unknown"

    assert payments.handle_gateway_webhook(tracker, "PAID", sign_tracker(tracker, WEBHOOK_SECRET)) is None
