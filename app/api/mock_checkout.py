from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.application.exceptions import NotFoundError
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.infrastructure.payments.mock_gateway import MockPaymentGateway
from app.wiring.dependencies import get_payment_gateway

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/mock-checkout", include_in_schema=False)
def mock_checkout(
    tracker: str = Query(...),
    outcome: str = Query("paid", pattern="^(paid|cancel)$"),
    gateway: PaymentGatewayPort = Depends(get_payment_gateway),
) -> RedirectResponse:
    """
    Stand-in for the hosted checkout page when the mock gateway is wired.
    Pays (or abandons) the session, then sends the browser back the way the
    real checkout does.
    """
    if not isinstance(gateway, MockPaymentGateway) or tracker not in gateway.redirects:
        raise NotFoundError("Checkout session not found")

    return_url, cancel_url = gateway.redirects[tracker]
    if outcome == "cancel":
        logger.info("Mock checkout abandoned", extra={"tracker": tracker})
        return RedirectResponse(cancel_url, status_code=302)

    gateway.complete(tracker)
    logger.info("Mock checkout paid", extra={"tracker": tracker})
    return RedirectResponse(str(httpx.URL(return_url).copy_merge_params({"tracker": tracker})), status_code=302)
