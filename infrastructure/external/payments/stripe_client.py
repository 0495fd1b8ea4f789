"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- The module-level resources are synchronous; calls run in a worker thread via
  asyncio.to_thread so the event loop is never blocked.
- Idempotency keys are supplied via the `idempotency_key` kwarg, derived from
  the payment id (intents) or the intent id (refunds).
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Callable, Optional

import stripe

from application.dtos.payments import GatewayIntent
from core.settings import payment_settings
from infrastructure.external.payments.base import BaseGatewayClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)


class StripeGatewayClient(BaseGatewayClient):
    provider = "stripe"
    retry_on = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(self, *, secret_key: Optional[str] = None, currency: Optional[str] = None):
        super().__init__()
        key = secret_key or payment_settings.stripe.secret_key
        if not key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        # Configure module-level key for compatibility across SDK variants
        stripe.api_key = key
        self.currency = (currency or payment_settings.currency).lower()

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        # Stripe expects amounts in the smallest currency unit
        exponent = 0 if currency.upper() in {"JPY", "KRW"} else 2
        return int((amount * (Decimal(10) ** exponent)).to_integral_value())

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs) -> Any:
        try:
            return await self._retry(lambda: asyncio.to_thread(fn, **kwargs))
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            raise PaymentRecoverableError(
                str(exc) or f"Stripe unavailable during {operation}",
                provider=self.provider,
                operation=operation,
                provider_code=getattr(exc, "code", None),
            ) from exc
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                str(exc) or f"Stripe rejected {operation}",
                provider=self.provider,
                operation=operation,
                provider_code=getattr(exc, "code", None),
            ) from exc

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent:
        payment_id = metadata.get("payment_id")
        pi = await self._call(
            "create_intent",
            stripe.PaymentIntent.create,
            amount=self._to_minor(amount, self.currency),
            currency=self.currency,
            # Stripe metadata values must be strings
            metadata={k: str(v) for k, v in metadata.items()},
            automatic_payment_methods={"enabled": True},
            idempotency_key=f"intent-{payment_id}",
        )
        self._log("gateway_intent_created", transaction_id=pi["id"], payment_id=payment_id)
        # Stripe completes payment client-side with the client secret; no hosted URL
        return GatewayIntent(transaction_id=str(pi["id"]), status=str(pi["status"]), payment_url=None)

    async def confirm(self, transaction_id: str) -> bool:
        pi = await self._call("confirm", stripe.PaymentIntent.retrieve, id=transaction_id)
        status = str(pi["status"])
        self._log("gateway_intent_confirmed", transaction_id=transaction_id, status=status)
        return self._is_settled(status)

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        refund = await self._call(
            "refund",
            stripe.Refund.create,
            payment_intent=transaction_id,
            amount=self._to_minor(amount, self.currency),
            idempotency_key=f"refund-{transaction_id}",
        )
        status = str(refund["status"])
        self._log("gateway_refund_result", transaction_id=transaction_id, status=status)
        return self._refund_accepted(status)
