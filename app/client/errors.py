from __future__ import annotations

from dataclasses import dataclass
from typing import Any

POPUP_BLOCKED = "popup_blocked"
PAYMENT_CANCELLED = "payment_cancelled"
NETWORK_ERROR = "network_error"


class ClientError(Exception):
    def __init__(self, code: str, message: str, status_code: int | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = dict(details or {})


class PopupBlocked(ClientError):
    def __init__(self) -> None:
        super().__init__(POPUP_BLOCKED, "Payment popup was blocked. Please allow popups for this site.")


class Cancelled(ClientError):
    def __init__(self) -> None:
        super().__init__(PAYMENT_CANCELLED, "Payment was cancelled before it completed.")


class ApiError(ClientError):
    """Error payload returned by the booking API, keeping the server's code."""


@dataclass(frozen=True)
class Banner:
    code: str
    message: str
    retry_label: str | None = None

    @property
    def retryable(self) -> bool:
        return self.retry_label is not None


_BANNERS: dict[str, tuple[str, str | None]] = {
    POPUP_BLOCKED: ("Your browser blocked the payment window. Allow popups for this site and try again.", "Open payment again"),
    PAYMENT_CANCELLED: ("Payment was cancelled. You have not been charged.", "Try again"),
    NETWORK_ERROR: ("We could not reach the server. Check your connection.", "Try again"),
    "NOT_FOUND": ("We could not find that booking.", None),
    "VALIDATION_ERROR": ("Some details need attention.", None),
    "ALREADY_PAID": ("This booking is already paid.", None),
    "CONFLICT": ("This booking cannot be changed right now.", "Try again"),
    "PAYMENT_NOT_VERIFIED": ("We could not verify your payment yet.", "Try again"),
    "GATEWAY_ERROR": ("The payment provider is unavailable. Please try again shortly.", "Try again"),
    "INTERNAL_ERROR": ("Something went wrong on our side.", "Try again"),
}


def banner_for(error: ClientError) -> Banner:
    message, retry_label = _BANNERS.get(error.code, (error.message or "Something went wrong.", "Try again"))
    return Banner(code=error.code, message=message, retry_label=retry_label)
