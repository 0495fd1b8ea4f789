"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
import uuid

from sqlalchemy import (
    Column, String, Numeric, DateTime, JSON, Index, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键（UUID字符串，由存储分配）
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # 支付对象
    student_id = Column(String(64), nullable=False, index=True, comment="学员ID")
    reference_type = Column(String(20), nullable=False, comment="支付对象类型: lesson/exam")
    reference_id = Column(String(64), nullable=False, comment="课程或考试ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="支付金额")
    method = Column(String(20), nullable=False, comment="支付方式: online/cash/card/bank_transfer")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/processing/paid/failed/confirmed/refunded"
    )

    # 网关交易ID（幂等键，只设置一次）
    gateway_transaction_id = Column(String(200), nullable=True, unique=True, comment="网关交易ID")

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        Index("ix_payments_student_status", "student_id", "status"),
        Index("ix_payments_reference", "reference_type", "reference_id", "student_id"),
        Index("ix_payments_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', student_id='{self.student_id}', "
            f"method='{self.method}', amount={self.amount}, status='{self.status}')>"
        )
