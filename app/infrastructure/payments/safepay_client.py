from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from app.application.exceptions import GatewayError
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.core.config import settings
from app.domain.entities.payment import PaymentSession, PaymentVerification
from app.infrastructure.payments.webhook_verify import verify_tracker_signature


class SafepayGateway(PaymentGatewayPort):
    """
    Safepay adapter over its REST API.
    Amounts cross this boundary in major units and travel to Safepay in paisa.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        merchant_api_key: str | None = None,
        host: str | None = None,
        checkout_host: str | None = None,
        environment: str | None = None,
        webhook_secret: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._secret_key = secret_key or settings.SAFEPAY_SECRET_KEY
        self._merchant_api_key = merchant_api_key or settings.SAFEPAY_MERCHANT_API_KEY
        self._host = (host or settings.SAFEPAY_HOST).rstrip("/")
        self._checkout_host = (checkout_host or settings.SAFEPAY_CHECKOUT_HOST).rstrip("/")
        self.environment = environment or settings.SAFEPAY_ENVIRONMENT
        self._webhook_secret = webhook_secret or settings.SAFEPAY_WEBHOOK_SECRET
        self._client = client or httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

        if not self._secret_key:
            raise ValueError("SAFEPAY_SECRET_KEY is required for the Safepay gateway")

    def _headers(self) -> dict[str, str]:
        return {"X-SFPY-MERCHANT-SECRET": self._secret_key or "", "Content-Type": "application/json"}

    def create_checkout_session(
        self,
        amount: int,
        currency: str,
        order_id: str,
        return_url: str,
        cancel_url: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentSession:
        payload = {
            "merchant_api_key": self._merchant_api_key,
            "intent": "CYBERSOURCE",
            "mode": "payment",
            "currency": currency,
            "amount": amount * 100,
            "metadata": {"order_id": order_id, **(metadata or {})},
        }
        try:
            response = self._client.post(f"{self._host}/order/payments/v3/", json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("Safepay session setup failed", extra={"order_id": order_id, "error": str(e)})
            raise GatewayError("Failed to initiate payment") from e

        tracker_token = _dig(data, "data", "tracker", "token")
        if not tracker_token:
            self._logger.error("Safepay session setup returned no tracker", extra={"order_id": order_id})
            raise GatewayError("Failed to initiate payment")

        checkout_url = str(
            httpx.URL(
                f"{self._checkout_host}/embedded/",
                params={
                    "env": self.environment,
                    "tracker": tracker_token,
                    "order_id": order_id,
                    "source": "hosted",
                    "redirect_url": return_url,
                    "cancel_url": cancel_url,
                },
            )
        )

        self._logger.info("Payment session created", extra={"order_id": order_id, "tracker": tracker_token})
        return PaymentSession(
            checkout_url=checkout_url,
            tracker_token=str(tracker_token),
            amount=amount,
            currency=currency,
            order_id=order_id,
            environment=self.environment,
        )

    def verify_payment(self, tracker_token: str) -> PaymentVerification:
        try:
            response = self._client.get(
                f"{self._host}/reporter/api/v1/payments/{tracker_token}",
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("Safepay verification failed", extra={"tracker": tracker_token, "error": str(e)})
            raise GatewayError("Failed to verify payment") from e

        state = _dig(data, "data", "state") or _dig(data, "data", "tracker", "state") or "UNKNOWN"
        raw_amount = _dig(data, "data", "amount")
        try:
            amount = _paisa_to_major(raw_amount)
        except (ValueError, ArithmeticError) as e:
            self._logger.error(
                "Safepay verification returned an unreadable amount",
                extra={"tracker": tracker_token, "amount": raw_amount},
            )
            raise GatewayError("Failed to verify payment") from e

        verification = PaymentVerification(
            tracker_token=tracker_token,
            state=str(state),
            reference=_dig(data, "data", "reference"),
            amount=amount,
            order_id=_dig(data, "data", "metadata", "order_id"),
        )
        self._logger.info(
            "Payment verification",
            extra={"tracker": tracker_token, "state": verification.state, "reference": verification.reference},
        )
        return verification

    def verify_webhook_signature(self, tracker_token: str, signature: str | None) -> bool:
        if not self._webhook_secret:
            self._logger.warning("SAFEPAY_WEBHOOK_SECRET not configured")
            return False
        return verify_tracker_signature(tracker_token, signature, self._webhook_secret)


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _paisa_to_major(raw: Any) -> int | None:
    if raw is None:
        return None
    paisa = Decimal(str(raw))
    if not paisa.is_finite() or paisa != paisa.to_integral_value():
        raise ValueError(f"Not a whole paisa amount: {raw!r}")
    return int(paisa) // 100
