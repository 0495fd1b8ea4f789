"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway adapters can be configured
(and overridden in tests) without touching application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class HttpGatewaySettings(BaseModel):
    base_url: str = "https://payment-gateway.example.com/api"
    api_key: Optional[str] = None


class SandboxGatewaySettings(BaseModel):
    payment_url_base: str = "https://payment-gateway.example.com/pay"
    # Scripted outcomes: the sandbox never decides randomly
    confirm_succeeds: bool = True
    refund_succeeds: bool = True


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="sandbox", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    # Upper bound for any single gateway call awaited by the lifecycle engine
    gateway_call_timeout: float = Field(default=10.0, validation_alias="PAYMENT__GATEWAY_CALL_TIMEOUT")
    currency: str = Field(default="USD", validation_alias="PAYMENT__CURRENCY")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    http: HttpGatewaySettings = Field(default_factory=HttpGatewaySettings)
    sandbox: SandboxGatewaySettings = Field(default_factory=SandboxGatewaySettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
