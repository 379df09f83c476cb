"""
HTTP adapters against httpx mock transports.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from app.application.exceptions import GatewayError
from app.client.api_client import BookingApiClient
from app.client.errors import NETWORK_ERROR, ApiError
from app.domain.entities.booking import Booking
from app.domain.entities.status import BookingKind
from app.infrastructure.notifications.resend_notifier import ResendNotifier
from app.infrastructure.payments.safepay_client import SafepayGateway
from app.infrastructure.payments.webhook_verify import secrets_match, sign_tracker, verify_tracker_signature


def _gateway(handler) -> SafepayGateway:
    return SafepayGateway(
        secret_key="sec_test",
        merchant_api_key="pk_test",
        host="https://sandbox.api.getsafepay.com",
        checkout_host="https://sandbox.getsafepay.com",
        environment="sandbox",
        webhook_secret="whsec",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_safepay_session_sends_paisa_and_builds_checkout_url():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["secret"] = request.headers["X-SFPY-MERCHANT-SECRET"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"tracker": {"token": "track_abc"}}})

    session = _gateway(handler).create_checkout_session(
        amount=50000,
        currency="PKR",
        order_id="bk_1",
        return_url="https://example.com/cb",
        cancel_url="https://example.com/cb?cancelled=true",
    )

    assert seen["url"] == "https://sandbox.api.getsafepay.com/order/payments/v3/"
    assert seen["secret"] == "sec_test"
    assert seen["body"]["amount"] == 5000000
    assert seen["body"]["metadata"]["order_id"] == "bk_1"
    assert session.amount == 50000
    assert session.tracker_token == "track_abc"
    url = httpx.URL(session.checkout_url)
    assert url.host == "sandbox.getsafepay.com"
    assert url.params["tracker"] == "track_abc"
    assert url.params["env"] == "sandbox"


def test_safepay_errors_become_gateway_errors():
    gateway = _gateway(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(GatewayError):
        gateway.create_checkout_session(100, "PKR", "bk_1", "https://a", "https://b")
    with pytest.raises(GatewayError):
        gateway.verify_payment("track_abc")


def test_safepay_session_without_tracker_is_gateway_error():
    gateway = _gateway(lambda request: httpx.Response(200, json={"data": {}}))

    with pytest.raises(GatewayError):
        gateway.create_checkout_session(100, "PKR", "bk_1", "https://a", "https://b")


def test_safepay_verification_reads_state_and_major_amount():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/reporter/api/v1/payments/track_abc"
        return httpx.Response(
            200,
            json={"data": {"state": "PAID", "amount": 5000000, "reference": "969025", "metadata": {"order_id": "bk_1"}}},
        )

    verification = _gateway(handler).verify_payment("track_abc")

    assert verification.is_paid
    assert verification.amount == 50000
    assert verification.order_id == "bk_1"
    assert verification.reference == "969025"


def test_safepay_webhook_signature():
    gateway = _gateway(lambda request: httpx.Response(404))

    assert gateway.verify_webhook_signature("track_abc", sign_tracker("track_abc", "whsec"))
    assert not gateway.verify_webhook_signature("track_abc", sign_tracker("track_abc", "other"))
    assert not gateway.verify_webhook_signature("track_abc", None)


def test_resend_notifier_posts_confirmation():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_1"})

    notifier = ResendNotifier(
        api_key="re_test",
        from_address="bookings@example.com",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    now = datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
    notifier.payment_confirmed(
        Booking(
            id="bk_1",
            kind=BookingKind.CONSULTATION,
            reference_number="CON-2026-0001",
            offering_id="consultation-corporate",
            full_name="Ayesha Khan",
            email="ayesha@example.com",
            phone_number="+923001234567",
            amount=50000,
            currency="PKR",
            created_at=now,
            updated_at=now,
        )
    )

    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["ayesha@example.com"]
    assert "CON-2026-0001" in seen["body"]["subject"]
    assert "PKR 50,000" in seen["body"]["text"]


@pytest.mark.asyncio
async def test_api_client_maps_error_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"error": {"code": "ALREADY_PAID", "message": "Booking is already paid", "details": {}}},
        )

    client = httpx.AsyncClient(base_url="https://api.example.com", transport=httpx.MockTransport(handler))
    api = BookingApiClient("https://api.example.com", client=client)

    with pytest.raises(ApiError) as exc_info:
        await api.initiate_payment("consultations", "bk_1", "https://a", "https://b")

    assert exc_info.value.code == "ALREADY_PAID"
    assert exc_info.value.status_code == 409
    await api.aclose()


@pytest.mark.asyncio
async def test_api_client_maps_transport_failure_to_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(base_url="https://api.example.com", transport=httpx.MockTransport(handler))
    api = BookingApiClient("https://api.example.com", client=client)

    with pytest.raises(ApiError) as exc_info:
        await api.next_step("consultations", "bk_1")

    assert exc_info.value.code == NETWORK_ERROR
    await api.aclose()


def test_safepay_verification_accepts_decimal_amount_strings():
    gateway = _gateway(
        lambda request: httpx.Response(200, json={"data": {"state": "PAID", "amount": "5000000.00"}})
    )

    assert gateway.verify_payment("track_abc").amount == 50000


@pytest.mark.parametrize("amount", ["5000000.50", "not-a-number", "NaN"])
def test_safepay_unreadable_amount_is_gateway_error(amount):
    gateway = _gateway(lambda request: httpx.Response(200, json={"data": {"state": "PAID", "amount": amount}}))

    with pytest.raises(GatewayError):
        gateway.verify_payment("track_abc")


def test_signature_check_rejects_non_ascii_header_values():
    assert secrets_match("abc", "abc")
    assert not secrets_match("abc", "café")
    assert not verify_tracker_signature("track_abc", "éabc", "whsec")
