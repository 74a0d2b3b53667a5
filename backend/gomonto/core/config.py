"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path

from typing import Any

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "GoMonto Smart Deposit API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    secret_key: str = Field("change-me", alias="SECRET_KEY")
    jwt_secret_key: str = Field(default="", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    cinetpay_api_key: str | None = Field(default=None, alias="CINETPAY_API_KEY")
    cinetpay_site_id: str | None = Field(default=None, alias="CINETPAY_SITE_ID")
    cinetpay_base_url: str = Field(
        "https://api-checkout.cinetpay.com", alias="CINETPAY_BASE_URL"
    )
    cinetpay_timeout_seconds: float = Field(15.0, alias="CINETPAY_TIMEOUT_SECONDS")

    public_api_url: str = Field("http://localhost:8000", alias="PUBLIC_API_URL")
    frontend_url: str = Field("https://gomonto.com", alias="FRONTEND_URL")
    default_country: str = Field("SN", alias="DEFAULT_COUNTRY")

    deposit_currency: str = Field("XOF", alias="DEPOSIT_CURRENCY")
    deposit_hold_days: int = Field(30, alias="DEPOSIT_HOLD_DAYS")
    deposit_payment_window_minutes: int = Field(
        60, alias="DEPOSIT_PAYMENT_WINDOW_MINUTES"
    )

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allowlist: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="CORS_ALLOWLIST"
    )

    rate_limit_default: str = Field("100/minute", alias="RATE_LIMIT_DEFAULT")
    rate_limit_login: str = Field("10/minute", alias="RATE_LIMIT_LOGIN")

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
    )

    def model_post_init(self, __context: Any) -> None:
        """Populate JWT secret from the generic secret when not provided."""

        if not self.jwt_secret_key:
            object.__setattr__(self, "jwt_secret_key", self.secret_key)

    @field_validator("cors_allow_origins", "cors_allowlist", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def cinetpay_notify_url(self) -> str:
        base = self.public_api_url.rstrip("/")
        return f"{base}{self.api_v1_prefix}/payments/cinetpay-webhook"


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
