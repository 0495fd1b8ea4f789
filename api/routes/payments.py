"""
Payments API routes.

Thin HTTP surface over PaymentService: parse input, call the service,
wrap the result in the unified response. Lifecycle rules and gateway
details stay in the application and infrastructure layers.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_payment_service
from application.dtos.payments import (
    ConfirmPaymentRequest,
    CreatePaymentRequest,
    OnlinePaymentSessionResponse,
    PaymentResponse,
    PaymentSummaryResponse,
    RefundPaymentRequest,
)
from application.services.payment_service import PaymentService
from core.config import settings
from core.response import Response as ApiResponse, success_response
from domain.payment.entity import PaymentFilters, PaymentMethod, PaymentStatus, ReferenceType


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", summary="Create payment", status_code=201, response_model=ApiResponse[PaymentResponse])
async def create_payment(
    payload: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.create_payment(payload)
    return success_response(data=PaymentResponse.from_entity(payment), message="Payment created")


@router.get("", summary="List payments", response_model=ApiResponse[list[PaymentResponse]])
async def list_payments(
    student_id: Optional[str] = Query(default=None),
    status: Optional[PaymentStatus] = Query(default=None),
    method: Optional[PaymentMethod] = Query(default=None),
    reference_type: Optional[ReferenceType] = Query(default=None),
    date_from: Optional[datetime] = Query(default=None),
    date_to: Optional[datetime] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: PaymentService = Depends(get_payment_service),
):
    filters = PaymentFilters(
        student_id=student_id,
        status=status,
        method=method,
        reference_type=reference_type,
        date_from=date_from,
        date_to=date_to,
        skip=skip,
        limit=limit,
    )
    payments = await service.list_payments(filters)
    return success_response(data=[PaymentResponse.from_entity(p) for p in payments])


@router.post("/confirm", summary="Confirm payment by gateway transaction", response_model=ApiResponse[PaymentResponse])
async def confirm_payment(
    payload: ConfirmPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.confirm_payment(payload.transaction_id)
    return success_response(data=PaymentResponse.from_entity(payment), message="Payment confirmed")


@router.get(
    "/students/{student_id}/summary",
    summary="Student payment summary",
    response_model=ApiResponse[PaymentSummaryResponse],
)
async def student_summary(student_id: str, service: PaymentService = Depends(get_payment_service)):
    summary = await service.get_summary(student_id)
    return success_response(data=PaymentSummaryResponse.from_summary(student_id, summary))


@router.get("/{payment_id}", summary="Get payment", response_model=ApiResponse[PaymentResponse])
async def get_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    payment = await service.get_payment(payment_id)
    return success_response(data=PaymentResponse.from_entity(payment))


@router.post(
    "/{payment_id}/process",
    summary="Start online payment",
    response_model=ApiResponse[OnlinePaymentSessionResponse],
)
async def process_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    session = await service.initiate_online_processing(payment_id)
    return success_response(data=OnlinePaymentSessionResponse.from_session(session), message="Payment processing")


@router.post("/{payment_id}/mark-paid", summary="Mark offline payment as paid", response_model=ApiResponse[PaymentResponse])
async def mark_paid(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    payment = await service.mark_as_paid(payment_id)
    return success_response(data=PaymentResponse.from_entity(payment), message="Payment marked as paid")


@router.post("/{payment_id}/refund", summary="Refund payment", response_model=ApiResponse[PaymentResponse])
async def refund_payment(
    payment_id: str,
    payload: RefundPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.refund_payment(payment_id, payload.reason)
    return success_response(data=PaymentResponse.from_entity(payment), message="Payment refunded")


@router.delete("/{payment_id}", summary="Delete pending payment", response_model=ApiResponse[None])
async def delete_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    await service.delete_payment(payment_id)
    return success_response(message="Payment deleted")
