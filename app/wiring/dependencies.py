from functools import lru_cache
import logging

from app.core.config import settings
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.notifier import NotifierPort
from app.application.ports.offering_catalog import OfferingCatalogPort
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.use_cases.booking_lifecycle import BookingLifecycleUseCase
from app.application.use_cases.payment import PaymentUseCase
from app.application.use_cases.scheduling_gate import SchedulingGate
from app.infrastructure.catalog.catalog_data import build_catalog
from app.infrastructure.catalog.offering_catalog_store import OfferingCatalogStore
from app.infrastructure.notifications.mock_notifier import MockNotifier
from app.infrastructure.notifications.resend_notifier import ResendNotifier
from app.infrastructure.payments.mock_gateway import MockPaymentGateway
from app.infrastructure.payments.safepay_client import SafepayGateway
from app.infrastructure.store.json_store import JsonBookingStore
from app.infrastructure.store.memory_store import MemoryBookingStore


_booking_store: BookingStorePort | None = None


def _is_local() -> bool:
    return settings.ENV.lower() in {"dev", "local", "test"}


def get_booking_store() -> BookingStorePort:
    global _booking_store
    if _booking_store is None:
        if settings.STORE_PROVIDER.lower() == "json":
            _booking_store = JsonBookingStore(data_dir=settings.STORE_DATA_DIR)
        else:
            _booking_store = MemoryBookingStore()
    return _booking_store


@lru_cache
def get_offering_catalog() -> OfferingCatalogPort:
    return OfferingCatalogStore(
        catalog=build_catalog(consultation_fee=settings.CONSULTATION_FEE, currency=settings.PAYMENT_CURRENCY)
    )


@lru_cache
def get_payment_gateway() -> PaymentGatewayPort:
    logger = logging.getLogger(__name__)
    if not settings.SAFEPAY_SECRET_KEY:
        if _is_local():
            logger.info("Using MockPaymentGateway (secret missing, ENV=%s)", settings.ENV)
            return MockPaymentGateway(
                webhook_secret=settings.SAFEPAY_WEBHOOK_SECRET or "mock-webhook-secret",
                base_url=settings.MOCK_CHECKOUT_BASE_URL,
            )
        raise ValueError("SAFEPAY_SECRET_KEY is required to take payments.")

    logger.info("Using SafepayGateway", extra={"environment": settings.SAFEPAY_ENVIRONMENT})
    return SafepayGateway()


@lru_cache
def get_notifier() -> NotifierPort:
    if not settings.RESEND_API_KEY or not settings.RESEND_API_KEY.strip():
        return MockNotifier()
    return ResendNotifier(api_key=settings.RESEND_API_KEY, from_address=settings.EMAIL_FROM_ADDRESS)


def get_lifecycle_use_case() -> BookingLifecycleUseCase:
    return BookingLifecycleUseCase(store=get_booking_store(), catalog=get_offering_catalog())


def get_payment_use_case() -> PaymentUseCase:
    return PaymentUseCase(
        store=get_booking_store(),
        catalog=get_offering_catalog(),
        gateway=get_payment_gateway(),
        notifier=get_notifier(),
        verify_with_gateway=settings.PAYMENT_VERIFY_WITH_GATEWAY,
        tracker_write_attempts=settings.PAYMENT_TRACKER_WRITE_ATTEMPTS,
    )


def get_scheduling_gate() -> SchedulingGate:
    return SchedulingGate(
        store=get_booking_store(),
        calcom_link=settings.CALCOM_LINK,
        calcom_base_url=settings.CALCOM_BASE_URL,
    )


def reset_container() -> None:
    """Drop cached adapters so the next request rebuilds them from settings."""
    global _booking_store
    _booking_store = None
    get_offering_catalog.cache_clear()
    get_payment_gateway.cache_clear()
    get_notifier.cache_clear()
