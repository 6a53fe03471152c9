"""OrderService -- 订单受理 + 通用状态流转 + 只读查询面

通用 transition_status 只处理非闸门目标（开始工作、取消、拒绝询单、撤回报价），
闸门目标必须经由对应的报价 / 支付 / 招募 / QC 操作到达。
"""

import secrets
import string
from datetime import UTC, datetime

import aiosqlite
import structlog
from ulid import ULID

from ..config import (
    QUERY_CODE_MAX_RETRIES,
    QUERY_CODE_PREFIX,
    QUERY_CODE_RANDOM_LENGTH,
)
from ..errors import ConflictError, UnauthorizedError, ValidationError
from ..models.enums import (
    AuditEventType,
    NotificationLevel,
    OrderStatus,
    Role,
    allowed_targets,
)
from ..models.order import ChatAccess, Order
from .base import WorkflowService, is_unique_violation, order_ref
from .registry import ensure_not_gated, ensure_transition

log = structlog.get_logger()

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_query_code() -> str:
    """生成查询码：前缀 + 8 位大写字母数字"""
    suffix = "".join(
        secrets.choice(_CODE_ALPHABET) for _ in range(QUERY_CODE_RANDOM_LENGTH)
    )
    return f"{QUERY_CODE_PREFIX}{suffix}"


def parse_deadline(value: datetime | str | None, now: datetime) -> datetime | None:
    """解析并校验截止时间（统一为 UTC，必须晚于当前时间）

    Raises:
        ValidationError: 格式错误或已过期
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(
                f"malformed deadline '{value}', expected ISO-8601",
                details={"field": "deadline_at"},
            ) from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    if value <= now:
        raise ValidationError(
            "deadline must be in the future",
            details={"field": "deadline_at"},
        )
    return value


class OrderService(WorkflowService):
    """订单业务服务"""

    async def create_order(
        self,
        actor_id: str,
        topic: str,
        subject: str = "",
        service: str = "",
        urgency: str = "normal",
        description: str = "",
        deadline_at: datetime | str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Order, bool]:
        """客户下单，订单进入 PENDING_QUERY

        Returns:
            (order, created) -- created=False 表示幂等键命中，返回已存在订单
        """
        actor = await self._resolve_actor(actor_id, "create_order", Role.CLIENT)

        if idempotency_key:
            existing_id = await self._stores.audit_store.check_idempotency_key(
                idempotency_key
            )
            if existing_id:
                return await self._load_order(existing_id), False

        if not topic or not topic.strip():
            raise ValidationError("topic is required", details={"field": "topic"})

        now = self._now()
        deadline = parse_deadline(deadline_at, now)

        for attempt in range(1, QUERY_CODE_MAX_RETRIES + 1):
            order = Order(
                order_id=str(ULID()),
                client_id=actor.user_id,
                topic=topic.strip(),
                subject=subject,
                service=service,
                urgency=urgency or "normal",
                description=description,
                query_code=generate_query_code(),
                status=OrderStatus.PENDING_QUERY,
                deadline_at=deadline,
                created_at=now,
                updated_at=now,
            )
            try:
                async with self._stores.transaction():
                    # 锁内复查幂等键，避免并发重复请求
                    if idempotency_key:
                        existing_id = await self._stores.audit_store.check_idempotency_key(
                            idempotency_key
                        )
                        if existing_id:
                            return await self._load_order(existing_id), False
                    await self._stores.order_store.create_order(order)
                    await self._audit.record(
                        order_id=order.order_id,
                        actor_id=actor.user_id,
                        actor_role=actor.role,
                        event_type=AuditEventType.ORDER_CREATED,
                        resource_type="order",
                        resource_id=order.order_id,
                        after={
                            "status": order.status.name,
                            "query_code": order.query_code,
                            "topic": order.topic,
                        },
                        idempotency_key=idempotency_key,
                    )
                break
            except aiosqlite.IntegrityError as e:
                if not is_unique_violation(e, "orders.query_code"):
                    raise
                if attempt >= QUERY_CODE_MAX_RETRIES:
                    raise ConflictError(
                        f"could not allocate a unique query code after {attempt} attempts"
                    ) from e
                log.warning(
                    "query_code_collision_retry",
                    attempt=attempt,
                    max_retries=QUERY_CODE_MAX_RETRIES,
                )

        log.info(
            "order_created",
            order_id=order.order_id,
            client_id=actor.user_id,
            query_code=order.query_code,
        )

        recipients = [actor.bde_id] if actor.bde_id else await self._users.list_user_ids(Role.BDE)
        await self._notify(
            [*recipients, *await self._admin_ids()],
            order,
            title=f"New query {order.query_code}",
            message=f"Client submitted a new query: {order.topic}",
        )
        return order, True

    async def get_order(self, order_id: str) -> Order:
        return await self._load_order(order_id)

    async def list_orders(
        self, actor_id: str, status: OrderStatus | None = None
    ) -> list[Order]:
        """按角色可见范围列出订单：客户看自己的，写手看指派给自己的"""
        actor = await self._resolve_actor(actor_id, "list_orders")
        if actor.role == Role.CLIENT:
            return await self._stores.order_store.list_orders(
                status=status, client_id=actor.user_id
            )
        if actor.role == Role.WRITER:
            return await self._stores.order_store.list_orders(
                status=status, writer_id=actor.user_id
            )
        return await self._stores.order_store.list_orders(status=status)

    async def transition_status(
        self,
        order_id: str,
        actor_id: str,
        target: OrderStatus,
        expected_status: OrderStatus | None = None,
        reason: str = "",
    ) -> Order:
        """通用受控流转：CAS (order_id, expected_status) -> target

        Raises:
            InvalidTransitionError: 闸门目标，或角色 / 状态不允许
            ConflictError: 读取过期（当前状态与 expected_status 不符）
        """
        actor = await self._resolve_actor(actor_id, "transition_status")
        order = await self._load_order(order_id)
        ensure_not_gated(target)

        from_status = order.status
        if expected_status is not None and expected_status != from_status:
            raise ConflictError(
                f"order {order_id} is {from_status.name}, not {expected_status.name}; "
                "refresh and retry",
                details={"current_status": from_status.name},
            )

        ensure_transition(actor.role, from_status, target)
        self._ensure_party(order, actor)

        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.order_store.update_status(
                order_id, from_status, target, now.isoformat()
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} is no longer {from_status.name}; refresh and retry"
                )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.STATUS_CHANGED,
                resource_type="order",
                resource_id=order_id,
                before={"status": from_status.name},
                after={"status": target.name, "reason": reason},
            )

        log.info(
            "order_status_changed",
            order_id=order_id,
            from_status=from_status.name,
            to_status=target.name,
            actor_id=actor.user_id,
        )

        order = order.model_copy(update={"status": target, "updated_at": now})
        level = (
            NotificationLevel.WARNING
            if target in (OrderStatus.CANCELLED, OrderStatus.QUERY_REJECTED)
            else NotificationLevel.INFO
        )
        bde_id = await self._client_bde_id(order.client_id)
        await self._notify(
            [
                uid
                for uid in (order.client_id, order.assigned_writer_id, bde_id)
                if uid != actor.user_id
            ],
            order,
            title=f"Order {order_ref(order)} is now {target.name}",
            message=reason or f"Status changed from {from_status.name} to {target.name}",
            level=level,
        )
        return order

    async def allowed_next(self, order_id: str, actor_id: str) -> list[OrderStatus]:
        """操作者在订单当前状态下的合法目标状态"""
        actor = await self._resolve_actor(actor_id, "allowed_next")
        order = await self._load_order(order_id)
        return allowed_targets(actor.role, order.status)

    async def access_tuple(self, order_id: str) -> ChatAccess:
        """聊天协作方使用的 (client, writer, bde) 访问三元组"""
        order = await self._load_order(order_id)
        return ChatAccess(
            order_id=order.order_id,
            client_id=order.client_id,
            writer_id=order.assigned_writer_id,
            bde_id=await self._client_bde_id(order.client_id),
        )

    async def view_order(self, order_id: str, actor_id: str) -> Order:
        """按角色可见范围读取订单

        客户只能看自己的订单；写手只能看被邀请、表达过兴趣或指派给自己的订单。
        """
        actor = await self._resolve_actor(actor_id, "view_order")
        order = await self._load_order(order_id)
        if actor.role == Role.WRITER and order.assigned_writer_id != actor.user_id:
            interest = await self._stores.interest_store.get_interest(
                order_id, actor.user_id
            )
            if interest is None:
                raise UnauthorizedError(
                    f"writer {actor.user_id} has no relation to order {order_id}",
                    role=actor.role,
                )
            return order
        self._ensure_party(order, actor)
        return order
