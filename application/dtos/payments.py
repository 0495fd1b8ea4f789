"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentSummary,
    ReferenceType,
    OnlinePaymentSession,
)


class GatewayIntent(BaseModel):
    """Gateway-side reservation of an amount, returned by create_intent."""
    transaction_id: str
    status: str
    payment_url: Optional[str] = None


class CreatePaymentRequest(BaseModel):
    student_id: str
    reference_type: ReferenceType
    reference_id: str
    # Positivity is a lifecycle rule enforced by the engine (InvalidAmount)
    amount: Decimal
    method: PaymentMethod
    metadata: Optional[dict[str, Any]] = None


class ConfirmPaymentRequest(BaseModel):
    transaction_id: str = Field(min_length=1)


class RefundPaymentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class PaymentResponse(BaseModel):
    id: str
    student_id: str
    reference_type: ReferenceType
    reference_id: str
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    gateway_transaction_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentResponse":
        return cls.model_validate(payment)


class OnlinePaymentSessionResponse(BaseModel):
    payment: PaymentResponse
    payment_url: str

    @classmethod
    def from_session(cls, session: OnlinePaymentSession) -> "OnlinePaymentSessionResponse":
        return cls(payment=PaymentResponse.from_entity(session.payment), payment_url=session.payment_url)


class PaymentSummaryResponse(BaseModel):
    student_id: str
    payment_count: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal

    @classmethod
    def from_summary(cls, student_id: str, summary: PaymentSummary) -> "PaymentSummaryResponse":
        return cls(
            student_id=student_id,
            payment_count=summary.payment_count,
            total_amount=summary.total_amount,
            paid_amount=summary.paid_amount,
            pending_amount=summary.pending_amount,
        )
