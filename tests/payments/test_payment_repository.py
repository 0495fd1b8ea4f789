from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.payment.entity import (
    Payment,
    PaymentFilters,
    PaymentMethod,
    PaymentStatus,
    ReferenceType,
)
from domain.payment.exceptions import PaymentNotFoundException, PaymentStateConflictException


def _new(student_id="s1", amount="10", method=PaymentMethod.CASH, reference_type=ReferenceType.LESSON, reference_id="l1"):
    now = datetime.now(timezone.utc)
    return Payment(
        id=None,
        student_id=student_id,
        reference_type=reference_type,
        reference_id=reference_id,
        amount=Decimal(amount),
        method=method,
        created_at=now,
        updated_at=now,
    )


async def _create(uow_factory, payment: Payment, status: PaymentStatus = PaymentStatus.PENDING) -> Payment:
    async with uow_factory() as uow:
        created = await uow.payment_repository.create(payment)
        if status != PaymentStatus.PENDING:
            created = await uow.payment_repository.conditional_update(
                created.id, PaymentStatus.PENDING, status=status
            )
    return created


@pytest.mark.asyncio
async def test_store_assigns_id(uow_factory):
    created = await _create(uow_factory, _new())
    assert created.id
    async with uow_factory(readonly=True) as uow:
        fetched = await uow.payment_repository.get_by_id(created.id)
    assert fetched.amount == Decimal("10")
    assert fetched.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_conditional_update_rejects_stale_status(uow_factory):
    created = await _create(uow_factory, _new(), PaymentStatus.PAID)
    async with uow_factory() as uow:
        with pytest.raises(PaymentStateConflictException) as ei:
            await uow.payment_repository.conditional_update(
                created.id, PaymentStatus.PENDING, status=PaymentStatus.FAILED
            )
    assert ei.value.expected_status == "pending"
    assert ei.value.current_status == "paid"


@pytest.mark.asyncio
async def test_conditional_update_missing_payment(uow_factory):
    async with uow_factory() as uow:
        with pytest.raises(PaymentNotFoundException):
            await uow.payment_repository.conditional_update(
                "missing", PaymentStatus.PENDING, status=PaymentStatus.PAID
            )


@pytest.mark.asyncio
async def test_failed_write_rolls_back_unit_of_work(uow_factory):
    created = await _create(uow_factory, _new())
    with pytest.raises(RuntimeError):
        async with uow_factory() as uow:
            await uow.payment_repository.conditional_update(
                created.id, PaymentStatus.PENDING, status=PaymentStatus.PAID
            )
            raise RuntimeError("boom")
    async with uow_factory(readonly=True) as uow:
        assert (await uow.payment_repository.get_by_id(created.id)).status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_delete_if_status(uow_factory):
    paid = await _create(uow_factory, _new(), PaymentStatus.PAID)
    async with uow_factory() as uow:
        with pytest.raises(PaymentStateConflictException):
            await uow.payment_repository.delete_if_status(paid.id, PaymentStatus.PENDING)

    pending = await _create(uow_factory, _new())
    async with uow_factory() as uow:
        await uow.payment_repository.delete_if_status(pending.id, PaymentStatus.PENDING)
    async with uow_factory(readonly=True) as uow:
        assert await uow.payment_repository.get_by_id(pending.id) is None


@pytest.mark.asyncio
async def test_summary_counts_paid_pending_and_total(uow_factory):
    await _create(uow_factory, _new(amount="50"), PaymentStatus.PAID)
    await _create(uow_factory, _new(amount="20"))
    await _create(uow_factory, _new(amount="10"), PaymentStatus.PROCESSING)
    # Another student's payment must not leak into the aggregate
    await _create(uow_factory, _new(student_id="s2", amount="99"))

    async with uow_factory() as uow:
        failed = await uow.payment_repository.list(PaymentFilters(status=PaymentStatus.PROCESSING))
        await uow.payment_repository.conditional_update(
            failed[0].id, PaymentStatus.PROCESSING, status=PaymentStatus.FAILED
        )

    async with uow_factory(readonly=True) as uow:
        summary = await uow.payment_repository.summarize_by_student("s1")
    assert summary.payment_count == 3
    assert summary.total_amount == Decimal("80")
    assert summary.paid_amount == Decimal("50")
    assert summary.pending_amount == Decimal("20")


@pytest.mark.asyncio
async def test_summary_counts_confirmed_as_paid(uow_factory):
    await _create(uow_factory, _new(amount="50"), PaymentStatus.PAID)
    confirmed = await _create(uow_factory, _new(amount="5"), PaymentStatus.PROCESSING)
    async with uow_factory() as uow:
        await uow.payment_repository.conditional_update(
            confirmed.id, PaymentStatus.PROCESSING, status=PaymentStatus.CONFIRMED
        )

    async with uow_factory(readonly=True) as uow:
        summary = await uow.payment_repository.summarize_by_student("s1")
    assert summary.payment_count == 2
    assert summary.paid_amount == Decimal("55")
    assert summary.pending_amount == Decimal("0")


@pytest.mark.asyncio
async def test_summary_for_unknown_student_is_zero(uow_factory):
    async with uow_factory(readonly=True) as uow:
        summary = await uow.payment_repository.summarize_by_student("nobody")
    assert summary.payment_count == 0
    assert summary.total_amount == Decimal("0")


@pytest.mark.asyncio
async def test_list_filters(uow_factory):
    await _create(uow_factory, _new(student_id="s1", method=PaymentMethod.CASH))
    await _create(uow_factory, _new(student_id="s1", method=PaymentMethod.ONLINE, reference_type=ReferenceType.EXAM))
    await _create(uow_factory, _new(student_id="s2", method=PaymentMethod.CARD), PaymentStatus.PAID)

    async with uow_factory(readonly=True) as uow:
        repo = uow.payment_repository
        assert len(await repo.list(PaymentFilters(student_id="s1"))) == 2
        assert len(await repo.list(PaymentFilters(method=PaymentMethod.ONLINE))) == 1
        assert len(await repo.list(PaymentFilters(reference_type=ReferenceType.EXAM))) == 1
        assert len(await repo.list(PaymentFilters(status=PaymentStatus.PAID))) == 1
        assert len(await repo.list(PaymentFilters(limit=2))) == 2
        assert len(await repo.list(PaymentFilters(skip=2))) == 1
        future = datetime.now(timezone.utc) + timedelta(days=1)
        assert await repo.list(PaymentFilters(date_from=future)) == []


@pytest.mark.asyncio
async def test_duplicate_bookings_are_separate_records(uow_factory):
    # Same student and reference twice; uniqueness belongs to the booking layer
    first = await _create(uow_factory, _new(reference_id="exam-7"))
    second = await _create(uow_factory, _new(reference_id="exam-7"))
    assert first.id != second.id


@pytest.mark.asyncio
async def test_lookup_by_gateway_transaction(uow_factory):
    created = await _create(uow_factory, _new(method=PaymentMethod.ONLINE), PaymentStatus.PROCESSING)
    async with uow_factory() as uow:
        await uow.payment_repository.conditional_update(
            created.id, PaymentStatus.PROCESSING, gateway_transaction_id="txn_abc"
        )
    async with uow_factory(readonly=True) as uow:
        found = await uow.payment_repository.get_by_gateway_transaction_id("txn_abc")
        missing = await uow.payment_repository.get_by_gateway_transaction_id("txn_nope")
    assert found.id == created.id
    assert missing is None
