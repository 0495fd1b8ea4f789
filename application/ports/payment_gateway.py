"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters and
tests inject scripted doubles.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import GatewayIntent


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment processor.

    Each method is an independent network call that may fail or time out.
    Transport failures must surface as PaymentGatewayException subclasses.
    """

    provider: str

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent: ...

    async def confirm(self, transaction_id: str) -> bool:
        """True means settled-success, False means settled-failure."""
        ...

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        """True means the refund was accepted; repeated calls for one transaction count once."""
        ...
