"""
Structlog 日志配置

structlog 与标准库 logging 共用一条处理链（ProcessorFormatter），
uvicorn / sqlalchemy 的日志与业务事件日志输出格式一致。
"""
import json
import logging
from typing import Any, List

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


def _add_service(_, __, event_dict: dict) -> dict:
    """附加服务名与环境，便于在聚合日志中区分来源"""
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def _json_dumps(obj, default=None, **kwargs) -> str:
    # 金额为 Decimal，统一转字符串输出
    return json.dumps(obj, ensure_ascii=False, default=default or str, **kwargs)


def _renderer() -> Any:
    """DEBUG 下彩色控制台输出，其余环境输出 JSON 行"""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)
    return JSONRenderer(serializer=_json_dumps)


def configure_logging() -> None:
    """配置 structlog 并接管根 logger 的输出"""
    pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        _add_service,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, _renderer()],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # SQL 语句日志只在 DATABASE__ECHO 开启时输出
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
