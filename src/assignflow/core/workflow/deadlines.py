"""DeadlineSweeper -- 截止提醒扫描

扫描有写手在岗且 24 小时内到期的订单，按最紧的档位（24/12/6/1 小时）
给承接写手发送提醒；每个 (order, writer, tier) 至多一次。
"""

from datetime import datetime, timedelta

import structlog

from ..config import DEADLINE_REMINDER_TIERS, DEADLINE_WINDOW_HOURS
from ..models.enums import WORKING_STATES, AuditEventType, NotificationLevel
from ..models.order import Order
from .audit import SYSTEM_ACTOR_ID, SYSTEM_ACTOR_ROLE
from .base import WorkflowService, order_ref

log = structlog.get_logger()


def pick_tier(remaining: timedelta, tiers: tuple[int, ...] = DEADLINE_REMINDER_TIERS) -> int | None:
    """剩余时间对应的最紧档位（小时）；超出最大档位或已过期返回 None"""
    if remaining <= timedelta(0):
        return None
    hours_left = remaining.total_seconds() / 3600
    candidates = [t for t in tiers if hours_left <= t]
    return min(candidates) if candidates else None


class DeadlineSweeper(WorkflowService):
    """截止提醒扫描器"""

    async def run_once(self, now: datetime | None = None) -> int:
        """执行一次扫描

        Returns:
            本次实际发送的提醒数
        """
        now = now or self._now()
        window = timedelta(hours=DEADLINE_WINDOW_HOURS)
        orders = await self._stores.order_store.list_orders_in_states(WORKING_STATES)

        sent = 0
        for order in orders:
            if order.assigned_writer_id is None or order.deadline_at is None:
                continue
            remaining = order.deadline_at - now
            if remaining > window:
                continue
            tier = pick_tier(remaining)
            if tier is None:
                continue
            if await self._send_reminder(order, tier, remaining, now):
                sent += 1

        log.info("deadline_sweep_completed", scanned=len(orders), sent=sent)
        return sent

    async def _send_reminder(
        self, order: Order, tier: int, remaining: timedelta, now: datetime
    ) -> bool:
        writer_id = order.assigned_writer_id
        async with self._stores.transaction():
            recorded = await self._stores.reminder_store.record_sent(
                order.order_id, writer_id, tier, now.isoformat()
            )
            if not recorded:
                return False
            await self._audit.record(
                order_id=order.order_id,
                actor_id=SYSTEM_ACTOR_ID,
                actor_role=SYSTEM_ACTOR_ROLE,
                event_type=AuditEventType.DEADLINE_REMINDER_SENT,
                resource_type="order",
                resource_id=order.order_id,
                after={
                    "writer_id": writer_id,
                    "tier_hours": tier,
                    "deadline_at": order.deadline_at.isoformat(),
                },
            )

        hours_left = max(1, round(remaining.total_seconds() / 3600))
        log.info(
            "deadline_reminder_sent",
            order_id=order.order_id,
            writer_id=writer_id,
            tier_hours=tier,
        )
        await self._notify(
            [writer_id],
            order,
            title=f"Deadline approaching for {order_ref(order)}",
            message=f"About {hours_left}h left before the deadline",
            level=(
                NotificationLevel.WARNING
                if tier == max(DEADLINE_REMINDER_TIERS)
                else NotificationLevel.CRITICAL
            ),
        )
        return True
