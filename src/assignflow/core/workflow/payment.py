"""PaymentGate -- 支付核验闸门

工作码的唯一生产者：按 100% 核验时，工作码与 CONFIRMED 状态在同一条
UPDATE、同一事务内写入；唯一约束冲突时换码重试。部分核验进入 PARTIALLY_PAID，
不生成工作码。
"""

import secrets
import string
import time

import aiosqlite
import structlog
from ulid import ULID

from ..config import (
    PAYMENT_AMOUNT_TOLERANCE,
    WORK_CODE_MAX_RETRIES,
    WORK_CODE_PREFIX,
    WORK_CODE_SUFFIX_LENGTH,
)
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.billing import Payment
from ..models.enums import (
    AuditEventType,
    NotificationLevel,
    OrderStatus,
    PaymentState,
    Role,
)
from ..models.order import Order
from .base import WorkflowService, is_unique_violation, order_ref
from .registry import ensure_transition

log = structlog.get_logger()

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_work_code() -> str:
    """生成工作码：前缀 + 毫秒时间戳 + 随机后缀"""
    suffix = "".join(
        secrets.choice(_SUFFIX_ALPHABET) for _ in range(WORK_CODE_SUFFIX_LENGTH)
    )
    return f"{WORK_CODE_PREFIX}{time.time_ns() // 1_000_000}{suffix}"


class PaymentGate(WorkflowService):
    """支付核验闸门"""

    async def submit_payment(
        self,
        order_id: str,
        actor_id: str,
        amount: float,
        method: str = "",
        reference: str = "",
    ) -> Payment:
        """客户提交支付凭证，订单进入 AWAITING_VERIFICATION"""
        actor = await self._resolve_actor(actor_id, "submit_payment", Role.CLIENT)
        order = await self._load_order(order_id)
        self._ensure_party(order, actor)
        if amount <= 0:
            raise ValidationError(
                "payment amount must be greater than zero", details={"field": "amount"}
            )
        ensure_transition(actor.role, order.status, OrderStatus.AWAITING_VERIFICATION)

        if await self._has_pending_payment(order_id):
            raise ConflictError(
                f"order {order_id} already has a payment awaiting verification"
            )

        now = self._now()
        payment = Payment(
            payment_id=str(ULID()),
            order_id=order_id,
            payer_id=actor.user_id,
            amount=amount,
            method=method,
            reference=reference,
            created_at=now,
            updated_at=now,
        )

        async with self._stores.transaction():
            # 锁内复查，两次并发提交只有一笔成为 pending
            if await self._has_pending_payment(order_id):
                raise ConflictError(
                    f"order {order_id} already has a payment awaiting verification"
                )
            await self._stores.payment_store.create_payment(payment)
            updated = await self._stores.order_store.update_status(
                order_id,
                order.status,
                OrderStatus.AWAITING_VERIFICATION,
                now.isoformat(),
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} is no longer {order.status.name}; refresh and retry"
                )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.PAYMENT_SUBMITTED,
                resource_type="payment",
                resource_id=payment.payment_id,
                before={"status": order.status.name},
                after={
                    "status": OrderStatus.AWAITING_VERIFICATION.name,
                    "amount": amount,
                },
            )

        log.info("payment_submitted", order_id=order_id, payment_id=payment.payment_id)

        await self._notify(
            await self._admin_ids(),
            order,
            title=f"Payment submitted for {order_ref(order)}",
            message=f"A payment of {amount:.2f} is awaiting verification",
        )
        return payment

    async def verify_payment(
        self,
        payment_id: str,
        actor_id: str,
        percentage: float = 100.0,
    ) -> tuple[Payment, Order]:
        """核验支付

        percentage == 100 且订单尚无工作码时生成工作码并置为 CONFIRMED；
        已有工作码时不重新生成。部分核验进入 PARTIALLY_PAID。

        Raises:
            ConflictError: 支付不是 pending，或并发修改
            ValidationError: 比例不合法，或累计金额低于订单总价容差
        """
        actor = await self._resolve_actor(actor_id, "verify_payment", Role.ADMIN)
        if not 0 < percentage <= 100:
            raise ValidationError(
                "percentage must be within (0, 100]", details={"field": "percentage"}
            )
        payment = await self._load_payment(payment_id)
        if payment.state != PaymentState.PENDING:
            raise ConflictError(
                f"payment {payment_id} is already {payment.state}; requires pending"
            )
        order = await self._load_order(payment.order_id)

        if percentage < 100:
            order = await self._verify_partial(payment, order, actor, percentage)
        elif order.work_code is not None:
            order = await self._verify_with_existing_code(payment, order, actor)
        else:
            order = await self._verify_and_mint(payment, order, actor)

        payment = await self._load_payment(payment_id)
        return payment, order

    async def _verify_partial(self, payment, order, actor, percentage) -> Order:
        ensure_transition(actor.role, order.status, OrderStatus.PARTIALLY_PAID)
        now = self._now()
        async with self._stores.transaction():
            await self._mark_verified(payment, actor, percentage, now)
            updated = await self._stores.order_store.update_status(
                order.order_id, order.status, OrderStatus.PARTIALLY_PAID, now.isoformat()
            )
            if not updated:
                raise ConflictError(
                    f"order {order.order_id} is no longer {order.status.name}; refresh and retry"
                )
            await self._audit.record(
                order_id=order.order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.PAYMENT_VERIFIED,
                resource_type="payment",
                resource_id=payment.payment_id,
                before={"status": order.status.name, "payment_state": "pending"},
                after={
                    "status": OrderStatus.PARTIALLY_PAID.name,
                    "payment_state": "verified",
                    "percentage": percentage,
                },
            )

        log.info(
            "payment_verified_partial",
            order_id=order.order_id,
            payment_id=payment.payment_id,
            percentage=percentage,
        )
        order = order.model_copy(
            update={"status": OrderStatus.PARTIALLY_PAID, "updated_at": now}
        )
        await self._notify(
            [payment.payer_id],
            order,
            title=f"Partial payment verified for {order_ref(order)}",
            message=f"{percentage:g}% of your payment has been verified",
        )
        return order

    async def _verify_with_existing_code(self, payment, order, actor) -> Order:
        """订单已有工作码：只核验支付，不重新生成工作码"""
        now = self._now()
        async with self._stores.transaction():
            await self._mark_verified(payment, actor, 100.0, now)
            await self._audit.record(
                order_id=order.order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.PAYMENT_VERIFIED,
                resource_type="payment",
                resource_id=payment.payment_id,
                before={"payment_state": "pending"},
                after={
                    "payment_state": "verified",
                    "percentage": 100.0,
                    "work_code": order.work_code,
                    "work_code_reused": True,
                },
            )
        log.info(
            "payment_verified_work_code_exists",
            order_id=order.order_id,
            payment_id=payment.payment_id,
        )
        return order

    async def _verify_and_mint(self, payment, order, actor) -> Order:
        ensure_transition(actor.role, order.status, OrderStatus.CONFIRMED)
        await self._ensure_amount_covers_total(payment, order)

        for attempt in range(1, WORK_CODE_MAX_RETRIES + 1):
            work_code = generate_work_code()
            now = self._now()
            try:
                async with self._stores.transaction():
                    await self._mark_verified(payment, actor, 100.0, now)
                    stamped = await self._stores.order_store.stamp_work_code(
                        order.order_id, order.status, work_code, now.isoformat()
                    )
                    if not stamped:
                        raise ConflictError(
                            f"order {order.order_id} changed concurrently or already "
                            "has a work code; refresh and retry"
                        )
                    await self._audit.record(
                        order_id=order.order_id,
                        actor_id=actor.user_id,
                        actor_role=actor.role,
                        event_type=AuditEventType.PAYMENT_VERIFIED,
                        resource_type="payment",
                        resource_id=payment.payment_id,
                        before={"status": order.status.name, "payment_state": "pending"},
                        after={
                            "status": OrderStatus.CONFIRMED.name,
                            "payment_state": "verified",
                            "percentage": 100.0,
                            "work_code": work_code,
                        },
                    )
                break
            except aiosqlite.IntegrityError as e:
                if not is_unique_violation(e, "orders.work_code"):
                    raise
                log.warning(
                    "work_code_collision_retry",
                    order_id=order.order_id,
                    attempt=attempt,
                    max_retries=WORK_CODE_MAX_RETRIES,
                )
        else:
            raise ConflictError(
                f"could not allocate a unique work code after {WORK_CODE_MAX_RETRIES} attempts"
            )

        log.info(
            "payment_verified",
            order_id=order.order_id,
            payment_id=payment.payment_id,
            work_code=work_code,
        )
        order = order.model_copy(
            update={
                "status": OrderStatus.CONFIRMED,
                "work_code": work_code,
                "updated_at": now,
            }
        )
        await self._notify(
            [payment.payer_id, *await self._admin_ids()],
            order,
            title=f"Order confirmed: {work_code}",
            message="Payment verified; your order is confirmed and awaiting writer assignment",
            level=NotificationLevel.SUCCESS,
        )
        return order

    async def reject_payment(self, payment_id: str, actor_id: str, reason: str) -> Payment:
        """拒绝支付：支付置为 rejected，订单状态不变，通知付款人"""
        actor = await self._resolve_actor(actor_id, "reject_payment", Role.ADMIN)
        if not reason or not reason.strip():
            raise ValidationError(
                "rejection reason is required", details={"field": "reason"}
            )
        payment = await self._load_payment(payment_id)
        if payment.state != PaymentState.PENDING:
            raise ConflictError(
                f"payment {payment_id} is already {payment.state}; requires pending"
            )
        order = await self._load_order(payment.order_id)

        now = self._now()
        async with self._stores.transaction():
            rejected = await self._stores.payment_store.mark_rejected(
                payment_id, reason.strip(), actor.user_id, now.isoformat()
            )
            if not rejected:
                raise ConflictError(
                    f"payment {payment_id} is no longer pending; refresh and retry"
                )
            await self._audit.record(
                order_id=order.order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.PAYMENT_REJECTED,
                resource_type="payment",
                resource_id=payment_id,
                before={"payment_state": "pending"},
                after={"payment_state": "rejected", "reason": reason.strip()},
            )

        log.info("payment_rejected", order_id=order.order_id, payment_id=payment_id)

        await self._notify(
            [payment.payer_id],
            order,
            title=f"Payment rejected for {order_ref(order)}",
            message=f"Your payment could not be verified: {reason.strip()}",
            level=NotificationLevel.WARNING,
        )
        return await self._load_payment(payment_id)

    async def _load_payment(self, payment_id: str) -> Payment:
        payment = await self._stores.payment_store.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    async def _has_pending_payment(self, order_id: str) -> bool:
        payments = await self._stores.payment_store.list_for_order(order_id)
        return any(p.state == PaymentState.PENDING for p in payments)

    async def _mark_verified(self, payment, actor, percentage, now) -> None:
        verified = await self._stores.payment_store.mark_verified(
            payment.payment_id, percentage, actor.user_id, now.isoformat()
        )
        if not verified:
            raise ConflictError(
                f"payment {payment.payment_id} is no longer pending; refresh and retry"
            )

    async def _ensure_amount_covers_total(self, payment: Payment, order: Order) -> None:
        """100% 核验要求累计已核验金额不低于总价（允许容差）"""
        if not order.total_price:
            return
        verified = await self._stores.payment_store.sum_verified_amount(order.order_id)
        covered = verified + payment.amount
        required = order.total_price * (1 - PAYMENT_AMOUNT_TOLERANCE)
        if covered < required:
            raise ValidationError(
                f"verified total {covered:.2f} is below order total "
                f"{order.total_price:.2f} (tolerance {PAYMENT_AMOUNT_TOLERANCE:.0%})",
                details={"verified_total": covered, "total_price": order.total_price},
            )
