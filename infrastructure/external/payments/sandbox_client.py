"""
In-process sandbox gateway.

Keeps intents in memory and answers with configured outcomes, so local
development and demos run the full online flow without a real processor.
Outcomes are fixed by settings (or constructor arguments), never random.
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, Optional

from application.dtos.payments import GatewayIntent
from core.settings import payment_settings
from infrastructure.external.payments.base import BaseGatewayClient
from infrastructure.external.payments.exceptions import PaymentProviderError


class SandboxGatewayClient(BaseGatewayClient):
    provider = "sandbox"

    def __init__(
        self,
        *,
        payment_url_base: Optional[str] = None,
        confirm_succeeds: Optional[bool] = None,
        refund_succeeds: Optional[bool] = None,
    ) -> None:
        super().__init__()
        cfg = payment_settings.sandbox
        self.payment_url_base = (payment_url_base or cfg.payment_url_base).rstrip("/")
        self.confirm_succeeds = cfg.confirm_succeeds if confirm_succeeds is None else confirm_succeeds
        self.refund_succeeds = cfg.refund_succeeds if refund_succeeds is None else refund_succeeds
        self.intents: dict[str, dict[str, Any]] = {}

    def _intent(self, transaction_id: str, operation: str) -> dict[str, Any]:
        intent = self.intents.get(transaction_id)
        if intent is None:
            raise PaymentProviderError(
                f"Unknown transaction: {transaction_id}",
                provider=self.provider,
                operation=operation,
                provider_code="resource_missing",
                details={"transaction_id": transaction_id},
            )
        return intent

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent:
        transaction_id = f"txn_{uuid.uuid4().hex}"
        self.intents[transaction_id] = {
            "amount": amount,
            "metadata": dict(metadata),
            "status": "requires_payment_method",
            "refunded": False,
        }
        self._log("gateway_intent_created", transaction_id=transaction_id, amount=str(amount))
        return GatewayIntent(
            transaction_id=transaction_id,
            status="requires_payment_method",
            payment_url=f"{self.payment_url_base}/{transaction_id}",
        )

    async def confirm(self, transaction_id: str) -> bool:
        intent = self._intent(transaction_id, "confirm")
        if intent["status"] == "requires_payment_method":
            intent["status"] = "succeeded" if self.confirm_succeeds else "payment_failed"
        self._log("gateway_intent_confirmed", transaction_id=transaction_id, status=intent["status"])
        return self._is_settled(intent["status"])

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        intent = self._intent(transaction_id, "refund")
        if intent["refunded"]:
            # Same transaction refunded once only
            return True
        if not self.refund_succeeds:
            self._log("gateway_refund_declined", transaction_id=transaction_id)
            return False
        intent["refunded"] = True
        self._log("gateway_refund_accepted", transaction_id=transaction_id, amount=str(amount))
        return self._refund_accepted("succeeded")
