"""
全局异常处理：业务码 -> HTTP 状态码映射，并统一输出响应信封
"""
import traceback
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from core.logging_config import get_logger
from core.response import error_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)


HTTP_STATUS_BY_CODE = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_MISSING: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_TYPE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.DATABASE_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    # 支付生命周期
    PaymentCode.INVALID_AMOUNT: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    PaymentCode.INVALID_METHOD: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.INVALID_STATE: http_status.HTTP_409_CONFLICT,
    PaymentCode.STATE_CONFLICT: http_status.HTTP_409_CONFLICT,
    PaymentCode.PAYMENT_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    PaymentCode.REFUND_FAILED: http_status.HTTP_402_PAYMENT_REQUIRED,
    # 网关
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.TIMEOUT: http_status.HTTP_504_GATEWAY_TIMEOUT,
}

# HTTPException 状态码 -> 业务码
CODE_BY_HTTP_STATUS = {
    404: BusinessCode.NOT_FOUND,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """未登记的业务码按 400 处理"""
    return HTTP_STATUS_BY_CODE.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _json_error(
    request: Request,
    status_code: int,
    *,
    code: int,
    message: str,
    error_type: str,
    details: Optional[dict] = None,
    field: Optional[str] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    body = error_response(
        code=code,
        message=message,
        error_type=error_type,
        details=details,
        field=field,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


async def handle_business_exception(request: Request, exc: BusinessException) -> JSONResponse:
    status_code = business_code_to_http_status(exc.code)
    # 网关类失败（5xx）需要告警，其余为调用方可处理的业务错误
    log = logger.error if status_code >= 500 else logger.info
    log(
        "business_exception",
        code=int(exc.code),
        error_type=exc.error_type,
        status_code=status_code,
        details=exc.details,
    )
    return _json_error(
        request,
        status_code,
        code=exc.code,
        message=exc.message,
        error_type=exc.error_type,
        details=exc.details,
        field=exc.field,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc 首项为 body/query/path，字段名从第二项开始
    field = ".".join(str(part) for part in first.get("loc", [])[1:])
    return _json_error(
        request,
        http_status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=BusinessCode.PARAM_VALIDATION_ERROR,
        message=f"Validation failed: {first.get('msg', 'unknown')}",
        error_type="ValidationError",
        details={"errors": [{k: v for k, v in err.items() if k != "ctx"} for err in errors]},
        field=field or None,
    )


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return _json_error(
        request,
        exc.status_code,
        code=CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
        message=str(exc.detail),
        error_type="HTTPError",
        details={"status_code": exc.status_code},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """注册全局异常处理器"""
    app.add_exception_handler(BusinessException, handle_business_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(HTTPException, handle_http_exception)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        # 调试模式下返回堆栈，生产环境不暴露内部细节
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if app.debug else None
        return _json_error(
            request,
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
        )
