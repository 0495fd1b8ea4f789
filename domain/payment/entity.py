"""
支付领域实体 - 支付聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Optional
from enum import Enum

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    InvalidPaymentAmountException,
    InvalidPaymentMethodException,
    InvalidPaymentStateException,
)


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 待支付
    PROCESSING = "processing"     # 已提交网关，处理中
    PAID = "paid"                 # 支付成功
    FAILED = "failed"             # 支付失败
    CONFIRMED = "confirmed"       # 外部确认（等同于 paid）
    REFUNDED = "refunded"         # 已退款


class PaymentMethod(str, Enum):
    """支付方式枚举"""
    ONLINE = "online"
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"


class ReferenceType(str, Enum):
    """支付对象类型"""
    LESSON = "lesson"
    EXAM = "exam"


SETTLED_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.CONFIRMED})
OFFLINE_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER})

# 状态机：from -> 允许的 to
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.PAID}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CONFIRMED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

REFUND_REASON_KEY = "refundReason"

AMOUNT_QUANTUM = Decimal("0.01")
AMOUNT_LIMIT = Decimal("1e10")


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_amount(value: Any) -> Decimal:
    """把外部输入转换为 Decimal 金额；无法解析时视为非法金额"""
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidPaymentAmountException(value)
    if not amount.is_finite():
        raise InvalidPaymentAmountException(value)
    # 与存储列 Numeric(12, 2) 一致：最多两位小数、十位整数，超出时拒绝而非静默舍入
    if abs(amount) >= AMOUNT_LIMIT or amount != amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN):
        raise InvalidPaymentAmountException(value)
    return amount


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise DomainValidationException(
            f"Invalid {field_name}: {value!r} (allowed: {allowed})",
            field=field_name,
        )


@dataclass
class Payment:
    """
    支付聚合根 - 管理支付生命周期

    业务规则：
    1. 金额必须大于0，创建后不可变
    2. 状态转换必须遵循 PAYMENT_TRANSITIONS，且不会回到 pending
    3. 在线支付必须经过 processing，由网关确认结果
    4. 线下支付（现金/刷卡/转账）可人工标记为已支付
    5. 只有 paid/confirmed 的支付才能退款
    6. 只有 pending 的支付才能删除
    """

    id: Optional[str]
    student_id: str
    reference_type: ReferenceType
    reference_id: str
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    gateway_transaction_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # 时间戳
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        self.amount = to_amount(self.amount)
        self._validate_amount()
        self.reference_type = parse_enum(ReferenceType, self.reference_type, "reference_type")
        self.method = parse_enum(PaymentMethod, self.method, "method")
        self.status = parse_enum(PaymentStatus, self.status, "status")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        """业务规则：金额必须大于0"""
        if self.amount <= 0:
            raise InvalidPaymentAmountException(self.amount)

    @property
    def is_online(self) -> bool:
        return self.method == PaymentMethod.ONLINE

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target in PAYMENT_TRANSITIONS.get(self.status, frozenset())

    def _transition(self, target: PaymentStatus, operation: str) -> None:
        if not self.can_transition_to(target):
            raise InvalidPaymentStateException(self.id, self.status.value, operation)
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    def start_processing(self) -> None:
        """pending -> processing，仅限在线支付"""
        if self.status != PaymentStatus.PENDING:
            raise InvalidPaymentStateException(self.id, self.status.value, "initiate_online_processing")
        if not self.is_online:
            raise InvalidPaymentMethodException(self.id, self.method.value, "initiate_online_processing")
        self._transition(PaymentStatus.PROCESSING, "initiate_online_processing")

    def attach_gateway_transaction(self, transaction_id: str) -> None:
        """
        记录网关交易ID

        业务规则：只在 processing 状态下设置，且只能设置一次
        """
        if not transaction_id:
            raise DomainValidationException("Gateway transaction id is empty", field="gateway_transaction_id")
        if self.status != PaymentStatus.PROCESSING:
            raise InvalidPaymentStateException(self.id, self.status.value, "attach_gateway_transaction")
        if self.gateway_transaction_id is not None:
            raise InvalidPaymentStateException(
                self.id,
                self.status.value,
                "attach_gateway_transaction",
                message=f"Payment {self.id} already has gateway transaction {self.gateway_transaction_id}",
                details={"gateway_transaction_id": self.gateway_transaction_id},
            )
        self.gateway_transaction_id = transaction_id
        self.updated_at = datetime.now(timezone.utc)

    def settle_from_gateway(self, succeeded: bool) -> None:
        """processing -> paid / failed，依据网关返回的真实结果"""
        operation = "confirm_payment"
        if self.status != PaymentStatus.PROCESSING:
            raise InvalidPaymentStateException(self.id, self.status.value, operation)
        self._transition(PaymentStatus.PAID if succeeded else PaymentStatus.FAILED, operation)

    def mark_paid_manually(self) -> None:
        """
        线下收款后人工标记为已支付

        业务规则：在线支付不能绕过网关对账
        """
        if self.method not in OFFLINE_METHODS:
            raise InvalidPaymentMethodException(self.id, self.method.value, "mark_as_paid")
        self._transition(PaymentStatus.PAID, "mark_as_paid")

    def ensure_refundable(self) -> None:
        """检查是否可以退款（不修改状态）"""
        if not self.is_settled:
            raise InvalidPaymentStateException(self.id, self.status.value, "refund_payment")
        if self.is_online and not self.gateway_transaction_id:
            raise InvalidPaymentStateException(
                self.id,
                self.status.value,
                "refund_payment",
                message=f"Online payment {self.id} has no gateway transaction to refund",
            )

    def mark_refunded(self, reason: str) -> None:
        """paid/confirmed -> refunded，退款原因追加到 metadata"""
        self.ensure_refundable()
        self._transition(PaymentStatus.REFUNDED, "refund_payment")
        self.metadata = {**(self.metadata or {}), REFUND_REASON_KEY: reason}

    def ensure_deletable(self) -> None:
        """只有未接触网关、未结算的支付可以删除"""
        if self.status != PaymentStatus.PENDING:
            raise InvalidPaymentStateException(self.id, self.status.value, "delete_payment")


@dataclass
class PaymentFilters:
    """支付列表过滤条件"""
    student_id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    method: Optional[PaymentMethod] = None
    reference_type: Optional[ReferenceType] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    skip: int = 0
    limit: int = 100


@dataclass(frozen=True)
class PaymentSummary:
    """学员支付汇总"""
    payment_count: int
    total_amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal


@dataclass(frozen=True)
class OnlinePaymentSession:
    """发起在线支付的结果"""
    payment: Payment
    payment_url: str
