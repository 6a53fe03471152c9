"""QuotationGate -- 报价闸门

每个订单一条报价（upsert），价格镜像到订单，订单进入 QUOTATION_SENT；
客户（或管理员代为）接受后进入 ACCEPTED。
"""

import structlog
from ulid import ULID

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.billing import Quotation
from ..models.enums import AuditEventType, NotificationLevel, OrderStatus, Role
from ..models.order import Order
from .base import WorkflowService, order_ref
from .registry import ensure_transition

log = structlog.get_logger()


def compute_final_price(
    base_price: float,
    urgency_charge: float = 0.0,
    discount: float = 0.0,
    final_price: float | None = None,
) -> float:
    """最终价格：显式给定则直接使用，否则 base + urgency - discount

    Raises:
        ValidationError: 输入为负或最终价格不为正
    """
    for field, value in (
        ("base_price", base_price),
        ("urgency_charge", urgency_charge),
        ("discount", discount),
    ):
        if value < 0:
            raise ValidationError(
                f"{field} must not be negative", details={"field": field}
            )
    price = final_price if final_price is not None else base_price + urgency_charge - discount
    if price <= 0:
        raise ValidationError(
            "final price must be greater than zero",
            details={"field": "final_price", "value": price},
        )
    return round(price, 2)


class QuotationGate(WorkflowService):
    """报价闸门"""

    async def create_or_update_quotation(
        self,
        order_id: str,
        actor_id: str,
        base_price: float,
        discount: float = 0.0,
        urgency_charge: float = 0.0,
        tax: float = 0.0,
        notes: str = "",
        final_price: float | None = None,
    ) -> Quotation:
        """新建或更新订单报价，订单进入 QUOTATION_SENT

        Raises:
            NotFoundError: 订单不存在（无任何副作用）
            InvalidTransitionError: 当前状态不允许报价
            ValidationError: 价格不合法
        """
        actor = await self._resolve_actor(
            actor_id, "create_or_update_quotation", Role.BDE, Role.ADMIN
        )
        order = await self._load_order(order_id)
        price = compute_final_price(base_price, urgency_charge, discount, final_price)
        if tax < 0:
            raise ValidationError("tax must not be negative", details={"field": "tax"})
        ensure_transition(actor.role, order.status, OrderStatus.QUOTATION_SENT)

        previous = await self._stores.quotation_store.get_for_order(order_id)
        now = self._now()
        quotation = Quotation(
            quotation_id=previous.quotation_id if previous else str(ULID()),
            order_id=order_id,
            quoted_price=base_price,
            urgency_charge=urgency_charge,
            discount=discount,
            tax=tax,
            final_price=price,
            notes=notes,
            quoted_by=actor.user_id,
            created_at=previous.created_at if previous else now,
            updated_at=now,
        )

        async with self._stores.transaction():
            await self._stores.quotation_store.upsert_quotation(quotation)
            await self._stores.order_store.update_pricing(
                order_id, base_price, discount, price, now.isoformat()
            )
            updated = await self._stores.order_store.update_status(
                order_id, order.status, OrderStatus.QUOTATION_SENT, now.isoformat()
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} is no longer {order.status.name}; refresh and retry"
                )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.QUOTATION_SAVED,
                resource_type="quotation",
                resource_id=quotation.quotation_id,
                before={
                    "status": order.status.name,
                    "final_price": previous.final_price if previous else None,
                },
                after={
                    "status": OrderStatus.QUOTATION_SENT.name,
                    "final_price": price,
                    "tax": tax,
                },
            )

        log.info(
            "quotation_saved",
            order_id=order_id,
            final_price=price,
            updated=previous is not None,
        )

        await self._notify(
            [order.client_id],
            order,
            title=f"Quotation ready for {order_ref(order)}",
            message=f"Your order has been quoted at {price:.2f}",
            level=NotificationLevel.SUCCESS,
        )
        return quotation

    async def accept_quotation(self, order_id: str, actor_id: str) -> Order:
        """客户接受报价：QUOTATION_SENT -> ACCEPTED"""
        actor = await self._resolve_actor(
            actor_id, "accept_quotation", Role.CLIENT, Role.ADMIN
        )
        order = await self._load_order(order_id)
        self._ensure_party(order, actor)
        ensure_transition(actor.role, order.status, OrderStatus.ACCEPTED)

        quotation = await self._stores.quotation_store.get_for_order(order_id)
        if quotation is None:
            raise NotFoundError("quotation", order_id)

        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.order_store.update_status(
                order_id, order.status, OrderStatus.ACCEPTED, now.isoformat()
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} is no longer {order.status.name}; refresh and retry"
                )
            await self._stores.quotation_store.mark_accepted(order_id, now.isoformat())
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.QUOTATION_ACCEPTED,
                resource_type="quotation",
                resource_id=quotation.quotation_id,
                before={"status": order.status.name},
                after={
                    "status": OrderStatus.ACCEPTED.name,
                    "final_price": quotation.final_price,
                },
            )

        log.info("quotation_accepted", order_id=order_id, actor_id=actor.user_id)

        order = order.model_copy(
            update={"status": OrderStatus.ACCEPTED, "updated_at": now}
        )
        await self._notify(
            [quotation.quoted_by, *await self._admin_ids()],
            order,
            title=f"Quotation accepted for {order_ref(order)}",
            message="The client accepted the quotation and can proceed to payment",
        )
        return order
