"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + SSEHub + 通知扇出器 + 路由注册。
工作流异常统一映射为 {"error": {"code", "message", "details"}}。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from assignflow.core.config import get_db_path, load_delivery_config
from assignflow.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from assignflow.core.store import create_store_group
from assignflow.core.workflow.notify import NotificationFanout, build_deliverer
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from .deps import MissingActorError
from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import (
    health,
    notifications,
    orders,
    payments,
    qc,
    quotations,
    recruitment,
    stream,
)
from .services.sse_hub import SSEHub

log = structlog.get_logger()

# 异常类型 -> HTTP 状态码（按子类优先顺序匹配）
_ERROR_STATUS: list[tuple[type[WorkflowError], int]] = [
    (NotFoundError, 404),
    (InvalidTransitionError, 403),
    (ConflictError, 409),
    (ValidationError, 422),
]


def error_status(exc: WorkflowError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """工作流异常 -> 结构化错误响应"""
    status_code = error_status(exc)
    await log.ainfo(
        "workflow_request_rejected",
        code=exc.code,
        status_code=status_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
            }
        },
    )


async def missing_actor_handler(request: Request, exc: MissingActorError) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            "error": {
                "code": "MISSING_ACTOR",
                "message": "X-User-Id header is required",
                "details": {},
            }
        },
    )


def attach_state(app: FastAPI, store_group, delivery_config=None) -> None:
    """把 StoreGroup / SSEHub / NotificationFanout 挂到 app.state"""
    delivery_config = delivery_config or load_delivery_config()
    sse_hub = SSEHub()
    app.state.store_group = store_group
    app.state.sse_hub = sse_hub
    app.state.fanout = NotificationFanout(
        store_group,
        publisher=sse_hub,
        deliverer=build_deliverer(delivery_config),
        timeout_s=delivery_config.timeout_s,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与通知组件，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())
    delivery_config = load_delivery_config()
    attach_state(app, store_group, delivery_config)
    log.info(
        "gateway_started",
        delivery_mode=delivery_config.mode,
        notify_timeout_s=delivery_config.timeout_s,
    )

    yield

    # 关闭：等待在途投递，再关闭数据库连接
    if getattr(app.state, "fanout", None):
        await app.state.fanout.drain()
    if getattr(app.state, "store_group", None):
        await app.state.store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="AssignFlow Gateway",
        version="0.1.0",
        description="AssignFlow 订单工作流 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()

    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(MissingActorError, missing_actor_handler)

    app.include_router(orders.router, tags=["orders"])
    app.include_router(quotations.router, tags=["quotations"])
    app.include_router(payments.router, tags=["payments"])
    app.include_router(recruitment.router, tags=["recruitment"])
    app.include_router(qc.router, tags=["qc"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
