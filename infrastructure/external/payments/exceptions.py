"""
Exceptions for payment providers mapped to the domain gateway exception.
"""
from __future__ import annotations

from typing import Optional

from domain.payment.exceptions import PaymentGatewayException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(PaymentGatewayException):
    """Provider rejected the call or answered with something unusable."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        operation: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            operation=operation,
            provider=provider,
            details=full_details,
            code=PaymentCode.PROVIDER_ERROR,
            error_type="PaymentProviderError",
        )


class PaymentRecoverableError(PaymentGatewayException):
    """Transport failure or throttling; the call may succeed if repeated later."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        operation: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            operation=operation,
            provider=provider,
            details=full_details,
            code=PaymentCode.PROVIDER_RECOVERABLE,
            error_type="PaymentRecoverableError",
        )
