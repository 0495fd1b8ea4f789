"""
Base gateway client implementing shared concerns: http, retry, logging, status mapping.

Concrete providers subclass and implement create_intent/confirm/refund.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from application.dtos.payments import GatewayIntent
from core.logging_config import get_logger
from core.settings import payment_settings
from shared.codes.payment_codes import GATEWAY_REFUND_ACCEPTED_STATUSES, GATEWAY_SETTLED_STATUSES


logger = get_logger(__name__)


class BaseGatewayClient:
    provider: str = "base"
    # Exceptions worth repeating the same (idempotent) request for
    retry_on: tuple = (httpx.TimeoutException, httpx.TransportError)

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or payment_settings.timeouts.model_dump()
        self._retry_cfg = retry or {
            "max": payment_settings.retry.max,
            "base": payment_settings.retry.base_backoff,
        }
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeouts)

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = self._build_client()
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent:
        raise NotImplementedError

    async def confirm(self, transaction_id: str) -> bool:
        raise NotImplementedError

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        raise NotImplementedError

    # Helpers
    def _is_settled(self, provider_status: str) -> bool:
        return provider_status in GATEWAY_SETTLED_STATUSES.get(self.provider, set())

    def _refund_accepted(self, provider_status: str) -> bool:
        return provider_status in GATEWAY_REFUND_ACCEPTED_STATUSES.get(self.provider, set())

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
