"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from decimal import Decimal
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update, delete, case

from domain.payment.entity import (
    Payment,
    PaymentFilters,
    PaymentMethod,
    PaymentStatus,
    PaymentSummary,
    ReferenceType,
    SETTLED_STATUSES,
)
from domain.payment.exceptions import PaymentNotFoundException, PaymentStateConflictException
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


def _to_decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            student_id=model.student_id,
            reference_type=ReferenceType(model.reference_type),
            reference_id=model.reference_id,
            amount=_to_decimal(model.amount),
            method=PaymentMethod(model.method),
            status=PaymentStatus(model.status),
            gateway_transaction_id=model.gateway_transaction_id,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            student_id=entity.student_id,
            reference_type=entity.reference_type.value,
            reference_id=entity.reference_id,
            amount=entity.amount,
            method=entity.method.value,
            status=entity.status.value,
            gateway_transaction_id=entity.gateway_transaction_id,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _fetch(self, payment_id: str) -> Optional[PaymentModel]:
        # populate_existing: 条件更新绕过了 identity map，需要重新加载
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _raise_for_mismatch(self, payment_id: str, expected_status: PaymentStatus) -> None:
        current = await self._fetch(payment_id)
        if current is None:
            raise PaymentNotFoundException(payment_id=payment_id)
        logger.warning(
            "payment_conditional_write_rejected",
            payment_id=payment_id,
            expected_status=expected_status.value,
            current_status=current.status,
        )
        raise PaymentStateConflictException(payment_id, expected_status.value, current.status)

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            student_id=db_payment.student_id,
            method=db_payment.method,
            amount=str(db_payment.amount),
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        db_payment = await self._fetch(payment_id)
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_gateway_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        """根据网关交易ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.gateway_transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def list(self, filters: PaymentFilters) -> List[Payment]:
        """按过滤条件获取支付列表"""
        query = select(PaymentModel)

        if filters.student_id:
            query = query.where(PaymentModel.student_id == filters.student_id)
        if filters.status:
            query = query.where(PaymentModel.status == filters.status.value)
        if filters.method:
            query = query.where(PaymentModel.method == filters.method.value)
        if filters.reference_type:
            query = query.where(PaymentModel.reference_type == filters.reference_type.value)
        if filters.date_from:
            query = query.where(PaymentModel.created_at >= filters.date_from)
        if filters.date_to:
            query = query.where(PaymentModel.created_at <= filters.date_to)

        query = (
            query.order_by(PaymentModel.created_at.desc(), PaymentModel.id)
            .offset(filters.skip)
            .limit(filters.limit)
        )

        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def conditional_update(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        *,
        status: Optional[PaymentStatus] = None,
        gateway_transaction_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        """条件更新支付记录（WHERE id = :id AND status = :expected）"""
        values: dict = {"updated_at": datetime.now(timezone.utc)}
        if status is not None:
            values["status"] = status.value
        if gateway_transaction_id is not None:
            values["gateway_transaction_id"] = gateway_transaction_id
        if metadata is not None:
            values["extra_metadata"] = metadata

        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status == expected_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._raise_for_mismatch(payment_id, expected_status)

        db_payment = await self._fetch(payment_id)
        logger.info(
            "payment_updated",
            payment_id=payment_id,
            from_status=expected_status.value,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def delete_if_status(self, payment_id: str, expected_status: PaymentStatus) -> None:
        """条件删除支付记录"""
        result = await self.session.execute(
            delete(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status == expected_status.value,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._raise_for_mismatch(payment_id, expected_status)
        logger.info("payment_deleted", payment_id=payment_id)

    async def summarize_by_student(self, student_id: str) -> PaymentSummary:
        """统计学员的支付数量与金额（单条聚合查询）"""
        settled = [s.value for s in SETTLED_STATUSES]
        query = select(
            func.count(PaymentModel.id),
            func.coalesce(func.sum(PaymentModel.amount), 0),
            func.coalesce(
                func.sum(case((PaymentModel.status.in_(settled), PaymentModel.amount), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(
                    case((PaymentModel.status == PaymentStatus.PENDING.value, PaymentModel.amount), else_=0)
                ),
                0,
            ),
        ).where(PaymentModel.student_id == student_id)

        result = await self.session.execute(query)
        count, total, paid, pending = result.one()
        return PaymentSummary(
            payment_count=int(count or 0),
            total_amount=_to_decimal(total),
            paid_amount=_to_decimal(paid),
            pending_amount=_to_decimal(pending),
        )
