"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials load under their
own `PAYMENT__` prefix, e.g. `PAYMENT__RAZORPAY__KEY_SECRET`.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator

from domain.payment.exceptions import PaymentConfigurationError
from domain.payment.signatures import (
    DEFAULT_REQUEST_HASH_LAYOUT,
    DEFAULT_RESPONSE_HASH_LAYOUT,
    HashChainSlot,
)


class PaymentTimeouts(BaseModel):
    connect: float = Field(default=5.0, gt=0, le=5.0)
    read: float = Field(default=10.0, gt=0, le=10.0)
    write: float = Field(default=10.0, gt=0, le=10.0)
    total: float = Field(default=20.0, gt=0, le=20.0)


class PaymentRetry(BaseModel):
    max: int = Field(default=2, ge=0, le=5)
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class CheckoutSettings(BaseModel):
    min_amount: int = 100
    max_amount: int = 15_000_000
    currencies: list[str] = Field(default_factory=lambda: ["INR", "USD", "EUR"])


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    base_url: str = "https://api.razorpay.com/v1"
    merchant_name: str = "Storefront"

    def missing(self) -> list[str]:
        return [name for name in ("key_id", "key_secret") if not getattr(self, name)]


class HdfcSettings(BaseModel):
    api_key: Optional[str] = None
    merchant_id: Optional[str] = None
    response_key: Optional[str] = None
    client_id: Optional[str] = None
    payment_url: str = "https://smartgatewayuat.hdfcbank.com/merchant/ipay"
    success_url: Optional[str] = None
    failure_url: Optional[str] = None
    cancel_url: Optional[str] = None
    request_hash_layout: list[str] = Field(default_factory=lambda: list(DEFAULT_REQUEST_HASH_LAYOUT))
    response_hash_layout: list[str] = Field(default_factory=lambda: list(DEFAULT_RESPONSE_HASH_LAYOUT))

    @field_validator("request_hash_layout", "response_hash_layout")
    @classmethod
    def _validate_layout(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("hash layout must not be empty")
        for token in v:
            HashChainSlot.parse(token)
        return v

    def missing(self) -> list[str]:
        return [name for name in ("api_key", "merchant_id", "response_key") if not getattr(self, name)]


class PaymentSettings(BaseSettings):
    enabled_providers: list[str] = Field(default_factory=lambda: ["razorpay", "hdfc"])
    frontend_url: str = "http://localhost:3000"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)
    hdfc: HdfcSettings = Field(default_factory=HdfcSettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("enabled_providers", mode="before")
    @classmethod
    def _parse_providers(cls, v):
        if isinstance(v, str):
            return [item.strip().lower() for item in v.split(",") if item.strip()]
        return [str(item).lower() for item in v]

    def missing_credentials(self, provider: str) -> list[str]:
        provider = provider.lower()
        if provider == "razorpay":
            return self.razorpay.missing()
        if provider == "hdfc":
            return self.hdfc.missing()
        return ["provider"]

    def validate_enabled(self) -> None:
        """Fail fast when an enabled gateway lacks its credentials."""
        for provider in self.enabled_providers:
            missing = self.missing_credentials(provider)
            if missing:
                raise PaymentConfigurationError(
                    f"Payment gateway {provider} is enabled but not configured",
                    provider=provider,
                    missing=missing,
                )


payment_settings = PaymentSettings()
