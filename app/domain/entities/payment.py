from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentSession:
    checkout_url: str
    tracker_token: str
    amount: int
    currency: str
    order_id: str
    environment: str


@dataclass(frozen=True)
class PaymentVerification:
    tracker_token: str
    state: str  # gateway state, e.g. "PAID", "TRACKER_STARTED", "FAILED"
    reference: str | None = None
    amount: int | None = None
    order_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.state.upper() == "PAID"


@dataclass(frozen=True)
class PaymentInitiation:
    checkout_url: str
    tracker_token: str
    amount: int
    currency: str
    order_id: str
    environment: str
