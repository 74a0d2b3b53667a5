"""CinetPay checkout API wrapper."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from gomonto.core.settings import GatewaySettings
from gomonto.security.redact import mask_phone

logger = logging.getLogger(__name__)

PAYMENT_CREATED_CODE = "201"
PAYMENT_CHECK_OK_CODE = "00"


@dataclass(slots=True)
class CheckoutCustomer:
    """Customer details forwarded to the checkout page."""

    name: str
    email: str
    phone_number: str = ""
    country: str = "SN"


@dataclass(slots=True)
class CheckoutSession:
    """Checkout page handle returned when a payment is initiated."""

    transaction_id: str
    payment_url: str
    payment_token: str | None = None


@dataclass(slots=True)
class PaymentCheck:
    """Outcome of a payment verification call."""

    transaction_id: str
    status: str
    amount: Decimal | None = None
    payment_method: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status == "ACCEPTED"

    @property
    def refused(self) -> bool:
        return self.status in {"REFUSED", "CANCELLED"}


class CinetPayClientError(RuntimeError):
    """Raised when CinetPay interaction fails."""


class CinetPayClient:
    """Thin async wrapper around the CinetPay v2 checkout endpoints."""

    def __init__(
        self,
        api_key: str,
        site_id: str,
        *,
        base_url: str = "https://api-checkout.cinetpay.com",
        notify_url: str = "",
        currency: str = "XOF",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._site_id = site_id
        self._notify_url = notify_url
        self._currency = currency
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CinetPayClient":
        if not settings.configured:
            raise CinetPayClientError("CinetPay credentials are not configured")
        return cls(
            settings.api_key or "",
            settings.site_id or "",
            base_url=settings.base_url,
            notify_url=settings.notify_url,
            currency=settings.currency,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "CinetPayClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        body = {"apikey": self._api_key, "site_id": self._site_id, **payload}
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise CinetPayClientError(f"CinetPay request to {path} failed") from exc
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise CinetPayClientError("CinetPay returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise CinetPayClientError("CinetPay returned an unexpected payload")
        return data

    async def initiate_payment(
        self,
        *,
        transaction_id: str,
        amount: Decimal,
        description: str,
        customer: CheckoutCustomer,
        return_url: str,
        metadata: dict[str, Any] | None = None,
    ) -> CheckoutSession:
        payload = {
            "transaction_id": transaction_id,
            "amount": int(amount),
            "currency": self._currency,
            "alternative_currency": "",
            "description": description,
            "customer_name": customer.name,
            "customer_surname": "",
            "customer_email": customer.email,
            "customer_phone_number": customer.phone_number,
            "customer_address": "",
            "customer_city": "",
            "customer_country": customer.country,
            "customer_state": "",
            "customer_zip_code": "",
            "notify_url": self._notify_url,
            "return_url": return_url,
            "channels": "ALL",
            "metadata": json.dumps(metadata or {}),
        }
        logger.info(
            "Initiating CinetPay payment %s for %s %s (phone %s)",
            transaction_id,
            int(amount),
            self._currency,
            mask_phone(customer.phone_number),
        )
        result = await self._post("/v2/payment", payload)
        if str(result.get("code")) != PAYMENT_CREATED_CODE:
            logger.warning(
                "CinetPay refused payment %s: %s", transaction_id, result.get("message")
            )
            raise CinetPayClientError(
                f"Payment initiation failed: {result.get('message', 'unknown error')}"
            )
        data = result.get("data") or {}
        payment_url = data.get("payment_url")
        if not payment_url:
            raise CinetPayClientError("CinetPay did not return a payment URL")
        return CheckoutSession(
            transaction_id=transaction_id,
            payment_url=str(payment_url),
            payment_token=data.get("payment_token"),
        )

    async def check_payment(self, transaction_id: str) -> PaymentCheck:
        result = await self._post("/v2/payment/check", {"transaction_id": transaction_id})
        if str(result.get("code")) != PAYMENT_CHECK_OK_CODE:
            raise CinetPayClientError(
                f"Payment verification failed: {result.get('message', 'unknown error')}"
            )
        data = result.get("data") or {}
        amount_raw = data.get("amount")
        return PaymentCheck(
            transaction_id=transaction_id,
            status=str(data.get("status", "PENDING")).upper(),
            amount=Decimal(str(amount_raw)) if amount_raw not in (None, "") else None,
            payment_method=data.get("payment_method"),
            raw=dict(data),
        )
