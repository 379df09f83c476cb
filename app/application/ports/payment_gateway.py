from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.payment import PaymentSession, PaymentVerification


class PaymentGatewayPort(ABC):
    environment: str = "sandbox"

    @abstractmethod
    def create_checkout_session(
        self,
        amount: int,
        currency: str,
        order_id: str,
        return_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentSession:
        """Create a hosted checkout session. Raises GatewayError on provider failure."""
        raise NotImplementedError

    @abstractmethod
    def verify_payment(self, tracker_token: str) -> PaymentVerification:
        """Fetch the current state of a session by tracker. Raises GatewayError on provider failure."""
        raise NotImplementedError

    @abstractmethod
    def verify_webhook_signature(self, tracker_token: str, signature: str | None) -> bool:
        raise NotImplementedError
