"""工作流服务基类

统一提供：操作者解析（只信任身份目录的 role / is_active）、订单加载、
审计记录器与通知扇出器。
"""

from collections.abc import Iterable
from datetime import UTC, datetime

import aiosqlite

from ..errors import NotFoundError, UnauthorizedError
from ..models.enums import NotificationLevel, Role
from ..models.notification import NotificationMessage
from ..models.order import Order
from ..models.user import User
from ..store import StoreGroup
from ..store.protocols import UserDirectory
from .audit import AuditRecorder
from .notify import NotificationFanout
from .registry import ensure_role


def is_unique_violation(error: aiosqlite.IntegrityError, target: str) -> bool:
    """判断 IntegrityError 是否为指定列 / 索引的唯一约束冲突"""
    message = str(error)
    return "UNIQUE constraint failed" in message and target in message


def order_ref(order: Order) -> str:
    """订单对外引用：确认后用工作码，之前用查询码"""
    return order.work_code or order.query_code


class WorkflowService:
    """工作流服务基类"""

    def __init__(
        self,
        store_group: StoreGroup,
        fanout: NotificationFanout | None = None,
    ) -> None:
        self._stores = store_group
        self._users: UserDirectory = store_group.user_store
        self._fanout = fanout or NotificationFanout(store_group)
        self._audit = AuditRecorder(store_group)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    async def _resolve_actor(
        self, actor_id: str, operation: str, *roles: Role
    ) -> User:
        """从身份目录解析操作者并校验角色

        Raises:
            UnauthorizedError: 用户不存在、已停用或角色不符
        """
        user = await self._users.get_user(actor_id)
        if user is None:
            raise UnauthorizedError(f"unknown actor {actor_id}")
        if not user.is_active:
            raise UnauthorizedError(
                f"actor {actor_id} is inactive", role=user.role
            )
        if roles:
            ensure_role(user, operation, *roles)
        return user

    async def authorize(self, actor_id: str, operation: str, *roles: Role) -> User:
        """只读查询面的操作者校验（路由层使用）"""
        return await self._resolve_actor(actor_id, operation, *roles)

    async def _load_order(self, order_id: str) -> Order:
        order = await self._stores.order_store.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        return order

    async def _admin_ids(self) -> list[str]:
        return await self._users.list_user_ids(Role.ADMIN)

    async def _notify(
        self,
        recipients: Iterable[str | None],
        order: Order,
        title: str,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
    ) -> None:
        """提交后的尽力而为通知"""
        await self._fanout.notify(
            recipients,
            NotificationMessage(
                title=title,
                message=message,
                level=level,
                order_id=order.order_id,
                link_url=f"/orders/{order.order_id}",
            ),
        )

    async def _client_bde_id(self, client_id: str) -> str | None:
        """负责该客户的 BDE"""
        client = await self._users.get_user(client_id)
        return client.bde_id if client else None

    @staticmethod
    def _ensure_party(order: Order, actor: User) -> None:
        """客户只能操作自己的订单，写手只能操作指派给自己的订单"""
        if actor.role == Role.CLIENT and order.client_id != actor.user_id:
            raise UnauthorizedError(
                f"client {actor.user_id} does not own order {order.order_id}",
                role=actor.role,
            )
        if actor.role == Role.WRITER and order.assigned_writer_id != actor.user_id:
            raise UnauthorizedError(
                f"writer {actor.user_id} is not the assignee of order {order.order_id}",
                role=actor.role,
            )
