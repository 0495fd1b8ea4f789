"""
访问日志中间件：记录请求开始/结束、状态码与耗时
"""
import json
import time
from typing import Any, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

# 探活与文档请求不记录
QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

# 请求体中需要脱敏的键（网关凭据、卡信息）
MASKED_KEYS = frozenset({"api_key", "secret", "secret_key", "token", "client_secret", "card_number", "cvc"})


def mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: "***" if k.lower() in MASKED_KEYS else mask(v) for k, v in value.items()}
    if isinstance(value, list):
        return [mask(v) for v in value]
    return value


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    请求日志中间件

    依赖外层 RequestIDMiddleware 绑定的 request_id；状态码 <400 记 info，
    4xx 记 warning，5xx 记 error。响应头附带 X-Process-Time。
    请求体默认不记录，可由 LOG_REQUEST_BODY_ENABLE_BY_DEFAULT（仅 DEBUG 生效）
    或请求头 X-Log-Body 开启。
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.body_by_default = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG
        self.body_max_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        context = {"query_params": dict(request.query_params)}
        body = await self._body_for_log(request)
        if body is not None:
            context["body"] = body
        logger.info("request_started", **context)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error_type=type(exc).__name__,
                exc_info=True,
                **context,
            )
            raise

        duration = time.perf_counter() - started
        status_code = response.status_code
        if status_code >= 500:
            log, event = logger.error, "request_server_error"
        elif status_code >= 400:
            log, event = logger.warning, "request_client_error"
        else:
            log, event = logger.info, "request_completed"
        log(event, status_code=status_code, duration=round(duration, 4), **context)

        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    def _wants_body(self, request: Request) -> bool:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return False
        flag = (request.headers.get("X-Log-Body") or "").lower()
        if flag in {"true", "1", "yes"}:
            return True
        if flag in {"false", "0", "no"}:
            return False
        return self.body_by_default

    async def _body_for_log(self, request: Request) -> Optional[Any]:
        if not self._wants_body(request):
            return None
        raw = await request.body()
        if not raw:
            return None
        text = raw[: self.body_max_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return text
        try:
            return mask(json.loads(text))
        except ValueError:
            # 截断后无法解析时按文本记录
            return text
