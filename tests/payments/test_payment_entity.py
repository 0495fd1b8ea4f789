from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import (
    PAYMENT_TRANSITIONS,
    REFUND_REASON_KEY,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from domain.payment.exceptions import (
    InvalidPaymentAmountException,
    InvalidPaymentMethodException,
    InvalidPaymentStateException,
)


def _payment(status=PaymentStatus.PENDING, method=PaymentMethod.ONLINE, **kw) -> Payment:
    return Payment(
        id="p1",
        student_id="s1",
        reference_type="lesson",
        reference_id="l1",
        amount=kw.pop("amount", Decimal("50")),
        method=method,
        status=status,
        **kw,
    )


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), "0.00"])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(InvalidPaymentAmountException):
        _payment(amount=amount)


def test_unparseable_amount_rejected():
    with pytest.raises(InvalidPaymentAmountException):
        _payment(amount="abc")


def test_unknown_method_is_validation_error():
    with pytest.raises(DomainValidationException) as ei:
        _payment(method="crypto")
    assert ei.value.field == "method"


def test_no_transition_returns_to_pending():
    for targets in PAYMENT_TRANSITIONS.values():
        assert PaymentStatus.PENDING not in targets
    assert PAYMENT_TRANSITIONS[PaymentStatus.REFUNDED] == frozenset()


def test_start_processing_requires_online_method():
    p = _payment(method=PaymentMethod.CASH)
    with pytest.raises(InvalidPaymentMethodException):
        p.start_processing()
    assert p.status == PaymentStatus.PENDING


def test_start_processing_checks_state_before_method():
    p = _payment(status=PaymentStatus.PAID, method=PaymentMethod.CASH)
    with pytest.raises(InvalidPaymentStateException):
        p.start_processing()


def test_gateway_transaction_is_set_once():
    p = _payment()
    p.start_processing()
    p.attach_gateway_transaction("txn_1")
    with pytest.raises(InvalidPaymentStateException):
        p.attach_gateway_transaction("txn_2")
    assert p.gateway_transaction_id == "txn_1"


def test_settle_from_gateway_outcomes():
    ok = _payment(status=PaymentStatus.PROCESSING)
    ok.settle_from_gateway(True)
    assert ok.status == PaymentStatus.PAID

    failed = _payment(status=PaymentStatus.PROCESSING)
    failed.settle_from_gateway(False)
    assert failed.status == PaymentStatus.FAILED


def test_online_payment_cannot_be_marked_paid_manually():
    p = _payment(method=PaymentMethod.ONLINE)
    with pytest.raises(InvalidPaymentMethodException):
        p.mark_paid_manually()


@pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.FAILED])
def test_offline_mark_paid_allowed_statuses(status):
    p = _payment(status=status, method=PaymentMethod.BANK_TRANSFER)
    p.mark_paid_manually()
    assert p.status == PaymentStatus.PAID


@pytest.mark.parametrize("status", [PaymentStatus.PAID, PaymentStatus.CONFIRMED, PaymentStatus.REFUNDED])
def test_offline_mark_paid_rejected_when_settled_or_refunded(status):
    p = _payment(status=status, method=PaymentMethod.CARD)
    with pytest.raises(InvalidPaymentStateException):
        p.mark_paid_manually()


def test_refund_merges_reason_into_metadata():
    p = _payment(status=PaymentStatus.CONFIRMED, method=PaymentMethod.CASH, metadata={"note": "desk"})
    p.mark_refunded("student cancelled")
    assert p.status == PaymentStatus.REFUNDED
    assert p.metadata == {"note": "desk", REFUND_REASON_KEY: "student cancelled"}


def test_refund_requires_settled_status():
    p = _payment(status=PaymentStatus.FAILED)
    with pytest.raises(InvalidPaymentStateException) as ei:
        p.ensure_refundable()
    assert ei.value.current_status == "failed"


def test_online_refund_requires_gateway_transaction():
    p = _payment(status=PaymentStatus.PAID)
    with pytest.raises(InvalidPaymentStateException):
        p.ensure_refundable()


def test_only_pending_is_deletable():
    _payment().ensure_deletable()
    with pytest.raises(InvalidPaymentStateException):
        _payment(status=PaymentStatus.PROCESSING).ensure_deletable()
