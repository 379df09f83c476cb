from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.application.validation import validate_intake
from app.client.api_client import BookingApiClient
from app.client.errors import Banner, ClientError, banner_for
from app.client.payment_orchestrator import POLL_INTERVAL_SECONDS, PaymentOrchestrator, PaymentPhase
from app.client.ports import MessageChannel, PopupOpener, ScreenGeometry
from app.domain.entities.status import KIND_PATHS, BookingKind

CONTACT_FIELDS = ("fullName", "email", "phoneNumber")


class WizardStep(str, Enum):
    INTAKE = "intake"
    DETAILS = "details"
    PAYMENT = "payment"
    SCHEDULING = "scheduling"
    DONE = "done"


@dataclass
class WizardState:
    kind: BookingKind
    step: WizardStep = WizardStep.INTAKE
    fields: dict[str, Any] = field(default_factory=dict)
    field_errors: dict[str, str] = field(default_factory=dict)
    booking: dict[str, Any] | None = None
    is_processing: bool = False
    last_error: ClientError | None = None
    banner: Banner | None = None
    scheduling_link: str | None = None
    prefill: dict[str, str] = field(default_factory=dict)


class BookingWizard:
    """
    Booking flow: contact details, kind-specific details, payment, then
    scheduling for consultations. State lives from `open()` to `close()`;
    closing tears down any payment popup still in flight.
    """

    def __init__(
        self,
        api: BookingApiClient,
        opener: PopupOpener,
        channel: MessageChannel,
        origin: str,
        screen: ScreenGeometry | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._api = api
        self._opener = opener
        self._channel = channel
        self._origin = origin
        self._screen = screen
        self._poll_interval = poll_interval
        self._logger = logging.getLogger(__name__)

        self.state: WizardState | None = None
        self.payment: PaymentOrchestrator | None = None
        self._urls: tuple[str, str] | None = None

    @property
    def is_open(self) -> bool:
        return self.state is not None

    def open(self, kind: BookingKind, prefill: dict[str, Any] | None = None) -> WizardState:
        self.close()
        self.state = WizardState(kind=kind, fields=dict(prefill or {}))
        return self.state

    def close(self) -> None:
        if self.payment is not None:
            self.payment.close()
            self.payment = None
        self._urls = None
        self.state = None

    def submit_contact(self, fields: dict[str, Any]) -> bool:
        state = self._require(WizardStep.INTAKE)
        state.fields.update(fields)
        result = validate_intake(self._payload(state))
        state.field_errors = {key: msg for key, msg in result.errors.items() if key in CONTACT_FIELDS}
        if state.field_errors:
            return False
        state.step = WizardStep.DETAILS
        return True

    async def submit_details(self, fields: dict[str, Any]) -> bool:
        state = self._require(WizardStep.DETAILS)
        if state.is_processing:
            return False
        state.fields.update(fields)
        payload = self._payload(state)
        result = validate_intake(payload)
        state.field_errors = dict(result.errors)
        if not result.ok:
            return False

        state.is_processing = True
        try:
            booking = await self._api.create_booking(KIND_PATHS[state.kind], payload)
        except ClientError as e:
            self._show(state, e)
            return False
        finally:
            state.is_processing = False

        self._clear_error(state)
        state.booking = booking
        state.step = WizardStep.PAYMENT
        self.payment = PaymentOrchestrator(
            api=self._api,
            kind_path=KIND_PATHS[state.kind],
            booking_id=booking["id"],
            opener=self._opener,
            channel=self._channel,
            origin=self._origin,
            screen=self._screen,
            poll_interval=self._poll_interval,
        )
        self._logger.info("Booking created", extra={"reference": booking.get("referenceNumber")})
        return True

    async def pay(self, return_url: str, cancel_url: str) -> PaymentPhase:
        state = self._require(WizardStep.PAYMENT)
        payment = self._payment()
        if state.is_processing:
            return payment.phase

        self._urls = (return_url, cancel_url)
        state.is_processing = True
        try:
            phase = await payment.begin(return_url, cancel_url)
            if phase == PaymentPhase.AWAITING_PAYMENT:
                phase = await payment.wait()
        finally:
            state.is_processing = False

        await self._after_payment(state, phase)
        return phase

    async def retry_payment(self) -> PaymentPhase:
        """Reopen checkout after a cancel or error, reusing the existing session."""
        state = self._require(WizardStep.PAYMENT)
        payment = self._payment()
        if payment.checkout_url is None:
            if self._urls is None:
                return payment.phase
            return await self.pay(*self._urls)
        if state.is_processing:
            return payment.phase

        state.is_processing = True
        try:
            phase = payment.retry()
            if phase == PaymentPhase.AWAITING_PAYMENT:
                phase = await payment.wait()
        finally:
            state.is_processing = False

        await self._after_payment(state, phase)
        return phase

    async def finish_later(self) -> bool:
        """Leave without scheduling; payment already completed the booking."""
        state = self._require(WizardStep.SCHEDULING)
        try:
            await self._api.finish_later(KIND_PATHS[state.kind], state.booking["id"])
        except ClientError as e:
            self._show(state, e)
            return False
        self._clear_error(state)
        state.step = WizardStep.DONE
        return True

    def scheduled(self) -> None:
        state = self._require(WizardStep.SCHEDULING)
        state.step = WizardStep.DONE

    async def _after_payment(self, state: WizardState, phase: PaymentPhase) -> None:
        payment = self._payment()
        if phase != PaymentPhase.CONFIRMED:
            if payment.error is not None:
                self._show(state, payment.error)
            return

        self._clear_error(state)
        state.booking = payment.booking or state.booking
        try:
            decision = await self._api.next_step(KIND_PATHS[state.kind], state.booking["id"])
        except ClientError as e:
            self._logger.warning("Could not load next step", extra={"error": e.code})
            decision = {"nextStep": "scheduling" if state.kind == BookingKind.CONSULTATION else "done"}

        if decision.get("nextStep") == "scheduling":
            state.scheduling_link = decision.get("schedulingLink")
            state.prefill = dict(decision.get("prefill") or {})
            state.step = WizardStep.SCHEDULING
        else:
            state.step = WizardStep.DONE

    def _payload(self, state: WizardState) -> dict[str, Any]:
        return {**state.fields, "kind": state.kind.value}

    def _payment(self) -> PaymentOrchestrator:
        if self.payment is None:
            raise RuntimeError("No booking to pay for")
        return self.payment

    def _require(self, step: WizardStep) -> WizardState:
        if self.state is None:
            raise RuntimeError("Wizard is not open")
        if self.state.step != step:
            raise RuntimeError(f"Wizard is at step '{self.state.step.value}', expected '{step.value}'")
        return self.state

    def _show(self, state: WizardState, error: ClientError) -> None:
        state.last_error = error
        state.banner = banner_for(error)
        if error.code == "VALIDATION_ERROR":
            state.field_errors = dict(error.details.get("fields") or {})

    def _clear_error(self, state: WizardState) -> None:
        state.last_error = None
        state.banner = None
