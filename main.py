"""
FastAPI 应用入口：组装中间件、异常处理、支付路由与网关生命周期
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.database import create_tables, engine
from infrastructure.external.payments import get_payment_gateway


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        # 开发环境直接建表；其他环境走 alembic upgrade head
        await create_tables()
        logger.info("database_tables_created")
    else:
        logger.info("database_migrations_required", hint="alembic upgrade head")

    gateway = get_payment_gateway()
    app.state.payment_gateway = gateway
    logger.info(
        "payment_gateway_ready",
        provider=gateway.provider,
        gateway_call_timeout=payment_settings.gateway_call_timeout,
    )
    try:
        yield
    finally:
        close = getattr(gateway, "aclose", None)
        if callable(close):
            await close()
        await engine.dispose()
        logger.info("application_shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="课程与考试预约的支付生命周期服务",
    )

    # 后添加的中间件在外层：RequestID 先绑定 request_id，访问日志才能带上
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(payments_routes.router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        return success_response(
            data={"status": "healthy", "version": settings.VERSION, "provider": payment_settings.default_provider}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
