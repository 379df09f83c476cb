from __future__ import annotations

import logging
import uuid

from app.application.exceptions import GatewayError
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.domain.entities.payment import PaymentSession, PaymentVerification
from app.infrastructure.payments.webhook_verify import verify_tracker_signature


class MockPaymentGateway(PaymentGatewayPort):
    def __init__(self, webhook_secret: str = "mock-webhook-secret", base_url: str = "http://localhost:8000") -> None:
        self.environment = "sandbox"
        self.sessions: dict[str, PaymentSession] = {}
        self.states: dict[str, str] = {}
        self.redirects: dict[str, tuple[str, str]] = {}
        self.fail_create = False
        self.fail_verify = False
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._logger = logging.getLogger(__name__)

    def create_checkout_session(
        self,
        amount: int,
        currency: str,
        order_id: str,
        return_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentSession:
        if self.fail_create:
            raise GatewayError("Failed to initiate payment")

        tracker_token = f"track_mock_{uuid.uuid4().hex[:12]}"
        session = PaymentSession(
            checkout_url=f"{self._base_url}/mock-checkout?tracker={tracker_token}&order_id={order_id}",
            tracker_token=tracker_token,
            amount=amount,
            currency=currency,
            order_id=order_id,
            environment=self.environment,
        )
        self.sessions[tracker_token] = session
        self.states[tracker_token] = "TRACKER_STARTED"
        self.redirects[tracker_token] = (return_url, cancel_url)
        self._logger.info(
            "Mock payment session created",
            extra={"tracker": tracker_token, "order_id": order_id, "amount": amount},
        )
        return session

    def complete(self, tracker_token: str) -> None:
        self.states[tracker_token] = "PAID"

    def fail(self, tracker_token: str) -> None:
        self.states[tracker_token] = "FAILED"

    def verify_payment(self, tracker_token: str) -> PaymentVerification:
        if self.fail_verify:
            raise GatewayError("Failed to verify payment")

        session = self.sessions.get(tracker_token)
        if session is None:
            return PaymentVerification(tracker_token=tracker_token, state="NOT_FOUND")
        state = self.states.get(tracker_token, "TRACKER_STARTED")
        return PaymentVerification(
            tracker_token=tracker_token,
            state=state,
            reference=f"ref_{tracker_token[-8:]}" if state == "PAID" else None,
            amount=session.amount,
            order_id=session.order_id,
        )

    def verify_webhook_signature(self, tracker_token: str, signature: str | None) -> bool:
        return verify_tracker_signature(tracker_token, signature, self._webhook_secret)
