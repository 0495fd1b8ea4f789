import asyncio
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from application.dtos.payments import CreatePaymentRequest, GatewayIntent
from application.services.payment_service import PaymentService
from infrastructure.database import build_engine, create_tables
from infrastructure.unit_of_work import sqlalchemy_uow_factory


class ScriptedGateway:
    """Deterministic gateway double: queued outcomes, optional failures, delays and hooks."""

    provider = "scripted"

    def __init__(self) -> None:
        self.confirm_results: list[bool] = []
        self.refund_results: list[bool] = []
        self.raise_on: dict[str, Exception] = {}
        self.delay: dict[str, float] = {}
        self.before_confirm: Optional[Callable[[str], Awaitable[None]]] = None
        self.calls: list[tuple[str, Any]] = []
        self._seq = 0

    async def _enter(self, operation: str, arg: Any) -> None:
        self.calls.append((operation, arg))
        if operation in self.delay:
            await asyncio.sleep(self.delay[operation])
        if operation in self.raise_on:
            raise self.raise_on[operation]

    def calls_for(self, operation: str) -> list:
        return [arg for op, arg in self.calls if op == operation]

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent:
        await self._enter("create_intent", metadata)
        self._seq += 1
        txn = f"txn_{self._seq}"
        return GatewayIntent(transaction_id=txn, status="requires_payment_method", payment_url=f"https://pay.test/{txn}")

    async def confirm(self, transaction_id: str) -> bool:
        await self._enter("confirm", transaction_id)
        if self.before_confirm is not None:
            hook, self.before_confirm = self.before_confirm, None
            await hook(transaction_id)
        return self.confirm_results.pop(0) if self.confirm_results else True

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        await self._enter("refund", transaction_id)
        return self.refund_results.pop(0) if self.refund_results else True


def payment_request(**overrides) -> CreatePaymentRequest:
    data = {
        "student_id": "student-1",
        "reference_type": "lesson",
        "reference_id": "lesson-1",
        "amount": Decimal("50.00"),
        "method": "online",
    }
    data.update(overrides)
    return CreatePaymentRequest(**data)


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


@pytest_asyncio.fixture
async def gateway():
    return ScriptedGateway()


@pytest_asyncio.fixture
async def service(uow_factory, gateway):
    return PaymentService(uow_factory, gateway, gateway_timeout=0.5)


@pytest_asyncio.fixture
async def make_request():
    return payment_request
