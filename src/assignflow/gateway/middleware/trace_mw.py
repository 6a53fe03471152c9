"""TraceMiddleware -- 订单级追踪

为订单操作绑定 trace_id，贯穿订单生命周期日志。
trace_id 从 /orders/{order_id} 路径中提取。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID 长度
_ORDER_ID_LENGTH = 26


def extract_order_id(path: str) -> str | None:
    """从 /api/orders/{order_id}[/...] 提取订单 ID"""
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == "orders" and i + 1 < len(parts):
            candidate = parts[i + 1]
            if len(candidate) == _ORDER_ID_LENGTH:
                return candidate
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """订单级追踪中间件 -- 为订单操作绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        order_id = extract_order_id(request.url.path)
        if order_id:
            structlog.contextvars.bind_contextvars(trace_id=f"trace-{order_id}")

        return await call_next(request)
