from __future__ import annotations

from typing import Any, Mapping

PAYMENT_SUCCESS = "payment-success"
PAYMENT_CANCELLED = "payment-cancelled"


def callback_message(params: Mapping[str, str]) -> dict[str, Any] | None:
    """
    Message the checkout callback page posts to its opener, built from the
    query string the gateway redirects to. Returns None when the redirect
    carries neither a cancellation nor a tracker.
    """
    if params.get("cancelled"):
        return {"type": PAYMENT_CANCELLED}
    tracker = params.get("tracker")
    if tracker:
        return {
            "type": PAYMENT_SUCCESS,
            "tracker": tracker,
            "reference": params.get("reference"),
            "signature": params.get("sig"),
        }
    return None
