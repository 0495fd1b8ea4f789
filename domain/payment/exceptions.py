"""
支付领域异常 - 生命周期守卫、查找失败与网关失败
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class InvalidPaymentAmountException(BusinessException):
    """支付金额必须大于0"""
    def __init__(self, amount):
        super().__init__(
            code=PaymentCode.INVALID_AMOUNT,
            message=f"Payment amount must be greater than 0: {amount}",
            error_type="InvalidAmount",
            details={"amount": str(amount)},
            field="amount",
        )


class InvalidPaymentMethodException(BusinessException):
    """操作不适用于该支付方式"""
    def __init__(self, payment_id: Optional[str], method: str, operation: str):
        super().__init__(
            code=PaymentCode.INVALID_METHOD,
            message=f"Operation '{operation}' is not allowed for {method} payments",
            error_type="InvalidMethod",
            details={"payment_id": payment_id, "method": method, "operation": operation},
            field="method",
        )


class InvalidPaymentStateException(BusinessException):
    """状态守卫失败：当前状态不允许该操作"""
    def __init__(
        self,
        payment_id: Optional[str],
        current_status: str,
        operation: str,
        *,
        message: Optional[str] = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.INVALID_STATE,
        error_type: str = "InvalidState",
    ):
        full_details = {
            "payment_id": payment_id,
            "current_status": current_status,
            "operation": operation,
        }
        if details:
            full_details.update(details)
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            code=code,
            message=message or f"Cannot {operation} payment in status '{current_status}'",
            error_type=error_type,
            details=full_details,
            field="status",
        )


class PaymentStateConflictException(InvalidPaymentStateException):
    """条件更新失败：记录状态已被其他请求修改"""
    def __init__(self, payment_id: str, expected_status: str, current_status: str):
        self.expected_status = expected_status
        super().__init__(
            payment_id,
            current_status,
            "conditional_update",
            message=(
                f"Payment {payment_id} changed concurrently: "
                f"expected '{expected_status}', found '{current_status}'"
            ),
            details={"expected_status": expected_status},
            code=PaymentCode.STATE_CONFLICT,
            error_type="PaymentStateConflict",
        )


class PaymentNotFoundException(BusinessException):
    """支付记录不存在"""
    def __init__(self, *, payment_id: Optional[str] = None, transaction_id: Optional[str] = None):
        details = {}
        if payment_id is not None:
            details["payment_id"] = payment_id
        if transaction_id is not None:
            details["transaction_id"] = transaction_id
        identifier = payment_id if payment_id is not None else f"transaction {transaction_id}"
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="NotFound",
            details=details or None,
        )


class PaymentGatewayException(BusinessException):
    """网关调用失败（传输错误、超时或网关拒绝）"""
    def __init__(
        self,
        message: str,
        *,
        operation: str,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "GatewayError",
    ):
        full_details = {"operation": operation, "provider": provider}
        if details:
            full_details.update(details)
        self.operation = operation
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )


class PaymentGatewayTimeoutException(PaymentGatewayException):
    def __init__(self, *, operation: str, timeout: float, provider: Optional[str] = None, details: Optional[dict] = None):
        merged = {"timeout_seconds": timeout}
        if details:
            merged.update(details)
        super().__init__(
            f"Gateway call '{operation}' timed out after {timeout}s",
            operation=operation,
            provider=provider,
            details=merged,
            code=PaymentCode.TIMEOUT,
            error_type="GatewayTimeout",
        )


class RefundFailedException(BusinessException):
    """网关明确拒绝退款"""
    def __init__(self, payment_id: str, transaction_id: str, amount: Decimal):
        super().__init__(
            code=PaymentCode.REFUND_FAILED,
            message=f"Gateway declined refund for payment {payment_id}",
            error_type="RefundFailed",
            details={
                "payment_id": payment_id,
                "transaction_id": transaction_id,
                "amount": str(amount),
            },
        )
