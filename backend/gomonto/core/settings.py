"""Specialized settings adapters for integrations."""

from __future__ import annotations

from pydantic import BaseModel

from gomonto.core.config import get_settings


class GatewaySettings(BaseModel):
    """Slim view of payment-gateway configuration."""

    api_key: str | None = None
    site_id: str | None = None
    base_url: str = "https://api-checkout.cinetpay.com"
    timeout_seconds: float = 15.0
    notify_url: str = ""
    frontend_url: str = ""
    currency: str = "XOF"
    country: str = "SN"

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.site_id)


def get_gateway_settings() -> GatewaySettings:
    """Return payment-gateway configuration."""

    settings = get_settings()
    return GatewaySettings(
        api_key=settings.cinetpay_api_key or None,
        site_id=settings.cinetpay_site_id or None,
        base_url=settings.cinetpay_base_url,
        timeout_seconds=settings.cinetpay_timeout_seconds,
        notify_url=settings.cinetpay_notify_url,
        frontend_url=settings.frontend_url,
        currency=settings.deposit_currency,
        country=settings.default_country,
    )
