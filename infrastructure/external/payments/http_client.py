"""
Generic REST gateway adapter built on httpx.

Endpoints (relative to PAYMENT__HTTP__BASE_URL):
- POST /intents                      -> {"id", "status", "payment_url"}
- POST /intents/{id}/confirm         -> {"status"}
- POST /intents/{id}/refunds         -> {"status"}

Every write carries an Idempotency-Key so that tenacity retries of the same
request cannot create a second intent or refund twice.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx

from application.dtos.payments import GatewayIntent
from core.settings import payment_settings
from infrastructure.external.payments.base import BaseGatewayClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class RetryableStatusError(Exception):
    """Gateway answered with a status worth repeating the request for."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


class HttpGatewayClient(BaseGatewayClient):
    provider = "http"
    retry_on = (httpx.TimeoutException, httpx.TransportError, RetryableStatusError)

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(retry=retry)
        cfg = payment_settings.http
        self.base_url = (base_url or cfg.base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else cfg.api_key
        self._transport = transport

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeouts,
            headers=headers,
            transport=self._transport,
        )

    async def _post(self, operation: str, path: str, payload: dict, idempotency_key: str) -> dict:
        async def _send() -> httpx.Response:
            async with self.client() as client:
                response = await client.post(path, json=payload, headers={"Idempotency-Key": idempotency_key})
            if response.status_code in RETRY_STATUS_CODES:
                raise RetryableStatusError(response)
            return response

        try:
            response = await self._retry(_send)
        except RetryableStatusError as exc:
            raise PaymentRecoverableError(
                f"Gateway unavailable during {operation}",
                provider=self.provider,
                operation=operation,
                provider_code=str(exc.response.status_code),
            ) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise PaymentRecoverableError(
                f"Gateway transport error during {operation}: {exc}",
                provider=self.provider,
                operation=operation,
            ) from exc

        if response.is_error:
            body = _safe_json(response)
            raise PaymentProviderError(
                str(body.get("message") or f"Gateway rejected {operation}"),
                provider=self.provider,
                operation=operation,
                provider_code=str(body.get("code") or response.status_code),
                details={"status_code": response.status_code},
            )
        return _safe_json(response)

    async def create_intent(self, amount: Decimal, metadata: dict[str, Any]) -> GatewayIntent:
        payment_id = metadata.get("payment_id")
        data = await self._post(
            "create_intent",
            "/intents",
            {
                "amount": str(amount),
                "currency": payment_settings.currency,
                "metadata": metadata,
            },
            idempotency_key=f"intent-{payment_id}",
        )
        if not data.get("id"):
            raise PaymentProviderError(
                "Gateway returned intent without id",
                provider=self.provider,
                operation="create_intent",
            )
        self._log("gateway_intent_created", transaction_id=data["id"], payment_id=payment_id)
        return GatewayIntent(
            transaction_id=str(data["id"]),
            status=str(data.get("status") or ""),
            payment_url=data.get("payment_url"),
        )

    async def confirm(self, transaction_id: str) -> bool:
        data = await self._post(
            "confirm",
            f"/intents/{transaction_id}/confirm",
            {},
            idempotency_key=f"confirm-{transaction_id}",
        )
        status = str(data.get("status") or "")
        self._log("gateway_intent_confirmed", transaction_id=transaction_id, status=status)
        return self._is_settled(status)

    async def refund(self, transaction_id: str, amount: Decimal) -> bool:
        data = await self._post(
            "refund",
            f"/intents/{transaction_id}/refunds",
            {"amount": str(amount), "currency": payment_settings.currency},
            idempotency_key=f"refund-{transaction_id}",
        )
        status = str(data.get("status") or "")
        self._log("gateway_refund_result", transaction_id=transaction_id, status=status)
        return self._refund_accepted(status)


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
