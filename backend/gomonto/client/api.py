"""HTTP client for the Smart Deposit endpoints."""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

import httpx

from gomonto.client.errors import DepositAPIError
from gomonto.schemas.deposit import DepositTransactionRead
from gomonto.services.deposit_rules import DepositAction

logger = logging.getLogger(__name__)


class SmartDepositAPI:
    """Calls the transition endpoint and reads deposit rows back."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._prefix = api_prefix.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def __aenter__(self) -> "SmartDepositAPI":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, f"{self._prefix}{path}", json=body, params=params
            )
        except httpx.HTTPError as exc:
            logger.warning("Smart deposit request %s %s failed: %s", method, path, exc)
            raise DepositAPIError(f"Request to {path} failed") from exc
        try:
            data = response.json() if response.content else None
        except json.JSONDecodeError:
            data = None
        if response.is_error:
            raise DepositAPIError(
                f"Request to {path} returned {response.status_code}",
                status_code=response.status_code,
                response_data=data if isinstance(data, dict) else None,
            )
        return data

    async def invoke(
        self,
        action: DepositAction,
        *,
        reservation_id: UUID,
        transaction_id: UUID | None = None,
        capture_amount: int | None = None,
        capture_reason: str | None = None,
    ) -> dict[str, Any]:
        """Post one action to the transition endpoint."""
        body: dict[str, Any] = {
            "action": action.value,
            "reservationId": str(reservation_id),
        }
        if transaction_id is not None:
            body["transactionId"] = str(transaction_id)
        if capture_amount is not None:
            body["captureAmount"] = capture_amount
        if capture_reason is not None:
            body["captureReason"] = capture_reason
        data = await self._request("POST", "/smart-deposit", body=body)
        return data if isinstance(data, dict) else {}

    async def fetch_transaction(
        self, reservation_id: UUID
    ) -> DepositTransactionRead | None:
        """Return the latest deposit transaction of a reservation."""
        data = await self._request(
            "GET", f"/reservations/{reservation_id}/deposit-transaction"
        )
        if data is None:
            return None
        return DepositTransactionRead.model_validate(data)
