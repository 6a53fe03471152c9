"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / SSEHub / 通知扇出器

实例通过 app.state 管理，在 lifespan 中初始化/清理。
操作者由 X-User-Id 请求头标识，角色与启用状态只从用户目录读取。
"""

from assignflow.core.store import StoreGroup
from assignflow.core.workflow.notify import NotificationFanout
from fastapi import Header, Request

from .services.sse_hub import SSEHub


class MissingActorError(Exception):
    """请求缺少 X-User-Id"""


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_sse_hub(request: Request) -> SSEHub:
    """从 app.state 获取 SSEHub 实例"""
    return request.app.state.sse_hub


def get_fanout(request: Request) -> NotificationFanout:
    """从 app.state 获取 NotificationFanout 实例"""
    return request.app.state.fanout


def get_actor_id(x_user_id: str | None = Header(default=None)) -> str:
    """读取操作者 ID；缺失时返回 401"""
    if not x_user_id or not x_user_id.strip():
        raise MissingActorError()
    return x_user_id.strip()
