import pytest

from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import (
    PaymentGatewayException,
    PaymentGatewayTimeoutException,
    PaymentStateConflictException,
)
from infrastructure.external.payments.exceptions import PaymentRecoverableError


async def _processing_payment(service, make_request):
    payment = await service.create_payment(make_request())
    session = await service.initiate_online_processing(payment.id)
    return session.payment


@pytest.mark.asyncio
async def test_double_confirm_returns_same_paid_record(service, gateway, make_request):
    payment = await _processing_payment(service, make_request)

    first = await service.confirm_payment(payment.gateway_transaction_id)
    second = await service.confirm_payment(payment.gateway_transaction_id)

    assert first.status == second.status == PaymentStatus.PAID
    assert first.id == second.id
    assert first.updated_at == second.updated_at
    # Duplicate callback does not reach the gateway again
    assert len(gateway.calls_for("confirm")) == 1


@pytest.mark.asyncio
async def test_racing_confirm_returns_settled_record(service, gateway, make_request):
    payment = await _processing_payment(service, make_request)
    txn = payment.gateway_transaction_id

    async def concurrent_callback(_txn):
        # A second confirmation settles the record while the first awaits the gateway
        await service.confirm_payment(_txn)

    gateway.before_confirm = concurrent_callback
    result = await service.confirm_payment(txn)

    assert result.status == PaymentStatus.PAID
    assert len(gateway.calls_for("confirm")) == 2
    current = await service.get_payment(payment.id)
    assert current.status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_racing_confirm_with_conflicting_outcome_raises(service, gateway, make_request):
    payment = await _processing_payment(service, make_request)
    txn = payment.gateway_transaction_id

    async def concurrent_callback(_txn):
        await service.confirm_payment(_txn)

    # Outer call sees failure, inner call (run first to completion) sees success
    gateway.before_confirm = concurrent_callback
    gateway.confirm_results = [True, False]

    with pytest.raises(PaymentStateConflictException) as ei:
        await service.confirm_payment(txn)
    assert ei.value.current_status == "paid"
    assert (await service.get_payment(payment.id)).status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_intent_timeout_leaves_processing_without_transaction(uow_factory, gateway, make_request):
    from application.services.payment_service import PaymentService

    service = PaymentService(uow_factory, gateway, gateway_timeout=0.05)
    gateway.delay["create_intent"] = 0.5
    payment = await service.create_payment(make_request())

    with pytest.raises(PaymentGatewayTimeoutException) as ei:
        await service.initiate_online_processing(payment.id)
    assert ei.value.operation == "create_intent"

    current = await service.get_payment(payment.id)
    assert current.status == PaymentStatus.PROCESSING
    assert current.gateway_transaction_id is None


@pytest.mark.asyncio
async def test_intent_transport_error_surfaces_gateway_error(service, gateway, make_request):
    gateway.raise_on["create_intent"] = PaymentRecoverableError(
        "connection reset", provider="scripted", operation="create_intent"
    )
    payment = await service.create_payment(make_request())

    with pytest.raises(PaymentGatewayException):
        await service.initiate_online_processing(payment.id)
    assert (await service.get_payment(payment.id)).status == PaymentStatus.PROCESSING


@pytest.mark.asyncio
async def test_confirm_gateway_error_leaves_processing(service, gateway, make_request):
    payment = await _processing_payment(service, make_request)
    gateway.raise_on["confirm"] = PaymentRecoverableError(
        "gateway unavailable", provider="scripted", operation="confirm"
    )
    with pytest.raises(PaymentGatewayException):
        await service.confirm_payment(payment.gateway_transaction_id)
    assert (await service.get_payment(payment.id)).status == PaymentStatus.PROCESSING

    # Caller retry after the gateway recovers
    gateway.raise_on.clear()
    assert (await service.confirm_payment(payment.gateway_transaction_id)).status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_refund_timeout_leaves_payment_paid(uow_factory, gateway, make_request):
    from application.services.payment_service import PaymentService

    service = PaymentService(uow_factory, gateway, gateway_timeout=0.05)
    payment = await service.create_payment(make_request())
    await service.initiate_online_processing(payment.id)
    await service.confirm_payment("txn_1")

    gateway.delay["refund"] = 0.5
    with pytest.raises(PaymentGatewayTimeoutException):
        await service.refund_payment(payment.id, "student withdrew")
    assert (await service.get_payment(payment.id)).status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_mark_paid_loses_race_to_confirm(service, uow_factory, make_request):
    payment = await service.create_payment(make_request(method="cash"))
    async with uow_factory() as uow:
        await uow.payment_repository.conditional_update(
            payment.id, PaymentStatus.PENDING, status=PaymentStatus.PAID
        )
    # Stale expectation from an earlier read
    async with uow_factory() as uow:
        with pytest.raises(PaymentStateConflictException):
            await uow.payment_repository.conditional_update(
                payment.id, PaymentStatus.PENDING, status=PaymentStatus.PAID
            )


@pytest.mark.asyncio
async def test_confirm_on_confirmed_record_returns_it_without_gateway_call(service, gateway, make_request, uow_factory):
    payment = await _processing_payment(service, make_request)
    async with uow_factory() as uow:
        confirmed = await uow.payment_repository.conditional_update(
            payment.id, PaymentStatus.PROCESSING, status=PaymentStatus.CONFIRMED
        )

    result = await service.confirm_payment(payment.gateway_transaction_id)

    assert result.status == PaymentStatus.CONFIRMED
    assert result.updated_at == confirmed.updated_at
    assert gateway.calls_for("confirm") == []


@pytest.mark.asyncio
async def test_racing_declined_confirm_returns_failed_record(service, gateway, make_request):
    payment = await _processing_payment(service, make_request)
    txn = payment.gateway_transaction_id

    async def concurrent_callback(_txn):
        await service.confirm_payment(_txn)

    # Both callers see the decline; the inner one writes failed first
    gateway.before_confirm = concurrent_callback
    gateway.confirm_results = [False, False]
    result = await service.confirm_payment(txn)

    assert result.status == PaymentStatus.FAILED
    assert len(gateway.calls_for("confirm")) == 2
