from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from app.application.use_cases.booking_lifecycle import BookingLifecycleUseCase
from app.application.use_cases.payment import PaymentUseCase
from app.application.use_cases.scheduling_gate import SchedulingGate
from app.client.ports import MessageChannel, MessageListener, PopupHandle, PopupOpener, WindowMessage
from app.domain.entities.intake import ConsultationIntake, RegistrationIntake
from app.infrastructure.catalog.offering_catalog_store import OfferingCatalogStore
from app.infrastructure.notifications.mock_notifier import MockNotifier
from app.infrastructure.payments.mock_gateway import MockPaymentGateway
from app.infrastructure.store.memory_store import MemoryBookingStore

WEBHOOK_SECRET = "test-webhook-secret"


def fixed_now() -> datetime:
    return datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> MemoryBookingStore:
    return MemoryBookingStore()


@pytest.fixture
def catalog() -> OfferingCatalogStore:
    return OfferingCatalogStore()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway(webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def notifier() -> MockNotifier:
    return MockNotifier()


@pytest.fixture
def lifecycle(store, catalog) -> BookingLifecycleUseCase:
    return BookingLifecycleUseCase(store=store, catalog=catalog, now=fixed_now)


@pytest.fixture
def payments(store, catalog, gateway, notifier) -> PaymentUseCase:
    return PaymentUseCase(store=store, catalog=catalog, gateway=gateway, notifier=notifier, now=fixed_now)


@pytest.fixture
def gate(store) -> SchedulingGate:
    return SchedulingGate(store=store, calcom_link="arco/consultation", calcom_base_url="https://cal.com")


@pytest.fixture
def consultation_intake() -> ConsultationIntake:
    return ConsultationIntake(
        fullName="Ayesha Khan",
        email="ayesha@example.com",
        phoneNumber="+923001234567",
        practiceArea="Corporate",
        issueSummary="Need advice on a shareholder dispute in my company.",
    )


@pytest.fixture
def registration_intake() -> RegistrationIntake:
    return RegistrationIntake(
        fullName="Bilal Ahmed",
        email="bilal@example.com",
        phoneNumber="+923331112223",
        serviceId="ntn-registration",
    )


ORIGIN = "https://bookings.example.com"


class FakePopup(PopupHandle):
    def __init__(self, url: str, name: str, features: str) -> None:
        self.url = url
        self.name = name
        self.features = features
        self.is_closed = False
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.is_closed

    def close(self) -> None:
        self.close_calls += 1
        self.is_closed = True


class FakePopupOpener(PopupOpener):
    def __init__(self) -> None:
        self.blocked = False
        self.opened: list[FakePopup] = []
        self.on_open: Callable[[FakePopup], None] | None = None

    def open(self, url: str, name: str, features: str) -> FakePopup | None:
        if self.blocked:
            return None
        popup = FakePopup(url, name, features)
        self.opened.append(popup)
        if self.on_open is not None:
            self.on_open(popup)
        return popup


class FakeMessageChannel(MessageChannel):
    def __init__(self) -> None:
        self.listeners: list[MessageListener] = []

    def add_listener(self, listener: MessageListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        self.listeners.remove(listener)

    def post(self, data: dict[str, Any], origin: str = ORIGIN) -> None:
        for listener in list(self.listeners):
            listener(WindowMessage(origin=origin, data=data))


class FakeBookingApi:
    """Stands in for BookingApiClient; records calls."""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.initiate_calls = 0
        self.confirm_calls: list[str] = []
        self.confirm_error: Exception | None = None
        self.confirm_gate: asyncio.Event | None = None
        self.create_error: Exception | None = None
        self.finished: list[str] = []
        self.next_step_response: dict[str, Any] = {
            "nextStep": "scheduling",
            "schedulingEnabled": True,
            "schedulingLink": "https://cal.com/arco/consultation",
            "prefill": {"name": "Ayesha Khan", "email": "ayesha@example.com"},
        }

    async def create_booking(self, kind_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        return {"id": "bk_1", "referenceNumber": "CON-2026-0001", "paymentStatus": "pending"}

    async def initiate_payment(self, kind_path: str, booking_id: str, return_url: str, cancel_url: str) -> dict[str, Any]:
        self.initiate_calls += 1
        return {
            "checkoutUrl": f"https://checkout.example.com/embedded/?tracker=track_{self.initiate_calls}",
            "trackerToken": f"track_{self.initiate_calls}",
            "orderId": booking_id,
        }

    async def confirm_payment(self, kind_path: str, booking_id: str, tracker_token: str) -> dict[str, Any]:
        self.confirm_calls.append(tracker_token)
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        if self.confirm_error is not None:
            raise self.confirm_error
        return {"id": booking_id, "paymentStatus": "paid", "bookingStatus": "payment_confirmed"}

    async def next_step(self, kind_path: str, booking_id: str) -> dict[str, Any]:
        return self.next_step_response

    async def finish_later(self, kind_path: str, booking_id: str) -> dict[str, Any]:
        self.finished.append(booking_id)
        return {"nextStep": "done"}


@pytest.fixture
def popups() -> FakePopupOpener:
    return FakePopupOpener()


@pytest.fixture
def channel() -> FakeMessageChannel:
    return FakeMessageChannel()


@pytest.fixture
def api() -> FakeBookingApi:
    return FakeBookingApi()


@pytest.fixture
def origin() -> str:
    return ORIGIN
