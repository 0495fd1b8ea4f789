"""
Application service orchestrating the payment lifecycle.

PaymentService owns the orchestration between the payment store (through a
unit of work) and the PaymentGateway port. Transition guards live on the
Payment entity; every write is a conditional update keyed on the status the
service read, and no database transaction is held open across a gateway call.
The gateway and the unit-of-work factory are injected by the composition root
(API/tests), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from application.dtos.payments import CreatePaymentRequest
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    OnlinePaymentSession,
    Payment,
    PaymentFilters,
    PaymentStatus,
    PaymentSummary,
    SETTLED_STATUSES,
)
from domain.payment.events import (
    PaymentCreated,
    PaymentDeleted,
    PaymentFailed,
    PaymentProcessingStarted,
    PaymentRefunded,
    PaymentSucceeded,
)
from domain.payment.exceptions import (
    InvalidPaymentStateException,
    PaymentGatewayException,
    PaymentGatewayTimeoutException,
    PaymentNotFoundException,
    PaymentStateConflictException,
    RefundFailedException,
)


logger = get_logger(__name__)

T = TypeVar("T")
UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


class PaymentService:
    """
    Payment lifecycle engine.

    Operations: create, get, list, initiate online processing, confirm,
    mark as paid (offline), refund, summary and delete. Domain errors are
    raised to the caller as-is; nothing is retried here.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: PaymentGateway,
        *,
        gateway_timeout: Optional[float] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.gateway_timeout = (
            gateway_timeout if gateway_timeout is not None else payment_settings.gateway_call_timeout
        )
        self.events: List = []

    # ------------------------------------------------------------------ helpers

    @staticmethod
    async def _get_or_raise(uow: AbstractUnitOfWork, payment_id: str) -> Payment:
        payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id=payment_id)
        return payment

    async def _call_gateway(self, operation: str, call: Awaitable[T], **context: Any) -> T:
        """Await a single gateway call bounded by gateway_timeout.

        A timeout fails this call only; state committed before the call stays.
        """
        provider = getattr(self.gateway, "provider", None)
        try:
            return await asyncio.wait_for(call, timeout=self.gateway_timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "payment_gateway_call_timeout",
                operation=operation,
                provider=provider,
                timeout=self.gateway_timeout,
                **context,
            )
            raise PaymentGatewayTimeoutException(
                operation=operation,
                timeout=self.gateway_timeout,
                provider=provider,
                details=context,
            ) from exc
        except PaymentGatewayException as exc:
            logger.error(
                "payment_gateway_call_failed",
                operation=operation,
                provider=provider,
                error=exc.message,
                **context,
            )
            raise

    @staticmethod
    def _event_fields(payment: Payment) -> dict:
        return {
            "payment_id": payment.id,
            "student_id": payment.student_id,
            "reference_type": payment.reference_type.value,
            "reference_id": payment.reference_id,
        }

    # ------------------------------------------------------------------ create / read

    async def create_payment(self, req: CreatePaymentRequest) -> Payment:
        """Record a pending payment. No gateway call is made here."""
        now = datetime.now(timezone.utc)
        # Entity validation raises InvalidPaymentAmountException before anything is persisted
        payment = Payment(
            id=None,
            student_id=req.student_id,
            reference_type=req.reference_type,
            reference_id=req.reference_id,
            amount=req.amount,
            method=req.method,
            status=PaymentStatus.PENDING,
            gateway_transaction_id=None,
            metadata=dict(req.metadata or {}),
            created_at=now,
            updated_at=now,
        )
        async with self._uow_factory() as uow:
            created = await uow.payment_repository.create(payment)

        self.events.append(PaymentCreated(
            **self._event_fields(created),
            amount=str(created.amount),
            method=created.method.value,
        ))
        return created

    async def get_payment(self, payment_id: str) -> Payment:
        async with self._uow_factory(readonly=True) as uow:
            return await self._get_or_raise(uow, payment_id)

    async def list_payments(self, filters: Optional[PaymentFilters] = None) -> List[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.list(filters or PaymentFilters())

    async def get_summary(self, student_id: str) -> PaymentSummary:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.summarize_by_student(student_id)

    # ------------------------------------------------------------------ online flow

    async def initiate_online_processing(self, payment_id: str) -> OnlinePaymentSession:
        """
        pending -> processing, then open a gateway intent.

        The processing write is committed before the gateway is contacted, so a
        crash or gateway failure leaves the record visibly in flight (processing
        without a gateway transaction id) instead of silently pending.
        """
        async with self._uow_factory() as uow:
            payment = await self._get_or_raise(uow, payment_id)
            payment.start_processing()
            payment = await uow.payment_repository.conditional_update(
                payment.id, PaymentStatus.PENDING, status=PaymentStatus.PROCESSING
            )
        logger.info("payment_processing_started", payment_id=payment.id, amount=str(payment.amount))

        try:
            intent = await self._call_gateway(
                "create_intent",
                self.gateway.create_intent(
                    payment.amount,
                    {
                        "payment_id": payment.id,
                        "student_id": payment.student_id,
                        "reference_type": payment.reference_type.value,
                        "reference_id": payment.reference_id,
                    },
                ),
                payment_id=payment.id,
            )
        except PaymentGatewayException:
            logger.error(
                "payment_intent_missing",
                payment_id=payment.id,
                status=payment.status.value,
                message="Payment left in processing without gateway transaction; needs reconciliation",
            )
            raise

        payment.attach_gateway_transaction(intent.transaction_id)
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.conditional_update(
                payment.id,
                PaymentStatus.PROCESSING,
                gateway_transaction_id=intent.transaction_id,
            )
        logger.info(
            "payment_intent_attached",
            payment_id=payment.id,
            gateway_transaction_id=intent.transaction_id,
            gateway_status=intent.status,
        )

        self.events.append(PaymentProcessingStarted(
            **self._event_fields(payment),
            gateway_transaction_id=payment.gateway_transaction_id,
        ))
        return OnlinePaymentSession(payment=payment, payment_url=intent.payment_url or "")

    async def confirm_payment(self, transaction_id: str) -> Payment:
        """
        Reconcile a processing payment against gateway truth.

        Idempotent: an already settled payment is returned unchanged without
        contacting the gateway, so duplicate callbacks are harmless.
        """
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_gateway_transaction_id(transaction_id)
        if payment is None:
            raise PaymentNotFoundException(transaction_id=transaction_id)

        if payment.is_settled:
            logger.info(
                "payment_confirm_duplicate",
                payment_id=payment.id,
                gateway_transaction_id=transaction_id,
                status=payment.status.value,
            )
            return payment
        if payment.status != PaymentStatus.PROCESSING:
            raise InvalidPaymentStateException(payment.id, payment.status.value, "confirm_payment")

        succeeded = bool(await self._call_gateway(
            "confirm",
            self.gateway.confirm(transaction_id),
            payment_id=payment.id,
            gateway_transaction_id=transaction_id,
        ))

        previous = payment.status
        payment.settle_from_gateway(succeeded)
        try:
            async with self._uow_factory() as uow:
                updated = await uow.payment_repository.conditional_update(
                    payment.id, previous, status=payment.status
                )
        except PaymentStateConflictException as exc:
            # A concurrent confirmation reached the same outcome first
            current = PaymentStatus(exc.current_status)
            agrees = current in SETTLED_STATUSES if succeeded else current == PaymentStatus.FAILED
            if agrees:
                logger.info(
                    "payment_confirm_race_resolved",
                    payment_id=payment.id,
                    gateway_transaction_id=transaction_id,
                    status=exc.current_status,
                )
                return await self.get_payment(payment.id)
            raise

        logger.info(
            "payment_confirmed",
            payment_id=updated.id,
            gateway_transaction_id=transaction_id,
            status=updated.status.value,
        )
        event_cls = PaymentSucceeded if succeeded else PaymentFailed
        self.events.append(event_cls(
            **self._event_fields(updated),
            gateway_transaction_id=transaction_id,
        ))
        return updated

    # ------------------------------------------------------------------ offline / refunds / delete

    async def mark_as_paid(self, payment_id: str) -> Payment:
        """Manual settlement for cash, card and bank transfer payments."""
        async with self._uow_factory() as uow:
            payment = await self._get_or_raise(uow, payment_id)
            previous = payment.status
            payment.mark_paid_manually()
            updated = await uow.payment_repository.conditional_update(
                payment.id, previous, status=PaymentStatus.PAID
            )
        logger.info(
            "payment_marked_paid",
            payment_id=updated.id,
            method=updated.method.value,
            from_status=previous.value,
        )
        self.events.append(PaymentSucceeded(**self._event_fields(updated)))
        return updated

    async def refund_payment(self, payment_id: str, reason: str) -> Payment:
        """
        Refund a settled payment.

        Online payments are refunded through the gateway first; a declined or
        failed gateway refund leaves the record untouched.
        """
        reason = (reason or "").strip()
        if not reason:
            raise DomainValidationException("Refund reason must not be empty", field="reason")

        async with self._uow_factory(readonly=True) as uow:
            payment = await self._get_or_raise(uow, payment_id)
        payment.ensure_refundable()

        if payment.is_online:
            accepted = await self._call_gateway(
                "refund",
                self.gateway.refund(payment.gateway_transaction_id, payment.amount),
                payment_id=payment.id,
                gateway_transaction_id=payment.gateway_transaction_id,
            )
            if not accepted:
                logger.warning(
                    "payment_refund_declined",
                    payment_id=payment.id,
                    gateway_transaction_id=payment.gateway_transaction_id,
                )
                raise RefundFailedException(payment.id, payment.gateway_transaction_id, payment.amount)

        previous = payment.status
        payment.mark_refunded(reason)
        async with self._uow_factory() as uow:
            updated = await uow.payment_repository.conditional_update(
                payment.id,
                previous,
                status=PaymentStatus.REFUNDED,
                metadata=payment.metadata,
            )
        logger.info(
            "payment_refunded",
            payment_id=updated.id,
            method=updated.method.value,
            amount=str(updated.amount),
        )
        self.events.append(PaymentRefunded(
            **self._event_fields(updated),
            amount=str(updated.amount),
            reason=reason,
        ))
        return updated

    async def delete_payment(self, payment_id: str) -> None:
        """Administrative delete; only payments that never left pending."""
        async with self._uow_factory() as uow:
            payment = await self._get_or_raise(uow, payment_id)
            payment.ensure_deletable()
            await uow.payment_repository.delete_if_status(payment.id, PaymentStatus.PENDING)
        self.events.append(PaymentDeleted(**self._event_fields(payment)))

    def clear_events(self) -> List:
        """Drain and return the collected domain events."""
        events = self.events.copy()
        self.events.clear()
        return events

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
