"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment, PaymentFilters, PaymentStatus, PaymentSummary


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做

    所有状态变更都通过条件更新完成：只有当记录当前状态等于 expected_status
    时才写入，否则显式失败，避免并发请求互相覆盖。
    """

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录（由存储分配ID）"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_by_gateway_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        """根据网关交易ID获取支付"""
        pass

    @abstractmethod
    async def list(self, filters: PaymentFilters) -> List[Payment]:
        """按过滤条件获取支付列表（按创建时间倒序）"""
        pass

    @abstractmethod
    async def conditional_update(
        self,
        payment_id: str,
        expected_status: PaymentStatus,
        *,
        status: Optional[PaymentStatus] = None,
        gateway_transaction_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        """
        条件更新支付记录

        仅当当前状态等于 expected_status 时生效，同时刷新 updated_at。
        记录不存在抛出 PaymentNotFoundException；
        状态不匹配抛出 PaymentStateConflictException。
        """
        pass

    @abstractmethod
    async def delete_if_status(self, payment_id: str, expected_status: PaymentStatus) -> None:
        """
        条件删除支付记录

        记录不存在抛出 PaymentNotFoundException；
        状态不匹配抛出 PaymentStateConflictException。
        """
        pass

    @abstractmethod
    async def summarize_by_student(self, student_id: str) -> PaymentSummary:
        """统计学员的支付数量与金额"""
        pass
