"""
API依赖项 - 组装支付应用服务
"""
from dataclasses import asdict
from typing import AsyncIterator, Iterable

from fastapi import Request

from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from infrastructure.database import AsyncSessionLocal
from infrastructure.unit_of_work import sqlalchemy_uow_factory


logger = get_logger(__name__)


def publish_events(events: Iterable) -> None:
    """请求结束时输出本次请求产生的领域事件"""
    for event in events:
        logger.info("payment_domain_event", event_type=type(event).__name__, **asdict(event))


async def get_payment_service(request: Request) -> AsyncIterator[PaymentService]:
    """按请求构造支付服务；网关客户端由应用生命周期持有并复用"""
    service = PaymentService(
        uow_factory=sqlalchemy_uow_factory(AsyncSessionLocal),
        gateway=request.app.state.payment_gateway,
    )
    try:
        yield service
    finally:
        publish_events(service.clear_events())
