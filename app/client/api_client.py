from __future__ import annotations

import logging
from typing import Any

import httpx

from app.client.errors import NETWORK_ERROR, ApiError

logger = logging.getLogger(__name__)


class BookingApiClient:
    """Async client for the public booking endpoints."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def create_booking(self, kind_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/{kind_path}", json=payload)

    async def initiate_payment(self, kind_path: str, booking_id: str, return_url: str, cancel_url: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/{kind_path}/{booking_id}/pay",
            json={"returnUrl": return_url, "cancelUrl": cancel_url},
        )

    async def confirm_payment(self, kind_path: str, booking_id: str, tracker_token: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/{kind_path}/{booking_id}/confirm-payment",
            json={"trackerToken": tracker_token},
        )

    async def get_status(self, kind_path: str, reference_number: str, email: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/{kind_path}/status",
            params={"referenceNumber": reference_number, "email": email},
        )

    async def next_step(self, kind_path: str, booking_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/{kind_path}/{booking_id}/next-step")

    async def finish_later(self, kind_path: str, booking_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/{kind_path}/{booking_id}/finish-later")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error("Booking API request failed", extra={"path": path, "error": str(e)})
            raise ApiError(NETWORK_ERROR, "Could not reach the server") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error") if isinstance(body, dict) else None
            if not isinstance(error, dict):
                error = {}
            raise ApiError(
                error.get("code") or "INTERNAL_ERROR",
                error.get("message") or f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                details=error.get("details") or {},
            )

        return response.json()
