"""截止提醒扫描测试"""

from datetime import UTC, datetime, timedelta

import pytest
from assignflow.core.models import AuditEventType, NotificationLevel, OrderStatus
from assignflow.core.workflow.deadlines import pick_tier


class TestPickTier:
    @pytest.mark.parametrize(
        "hours,expected",
        [
            (30, None),
            (24, 24),
            (20, 24),
            (11.5, 12),
            (6, 6),
            (0.5, 1),
            (0, None),
            (-2, None),
        ],
    )
    def test_tier(self, hours, expected):
        assert pick_tier(timedelta(hours=hours)) == expected


class TestDeadlineSweeper:
    @pytest.fixture
    def deadline(self) -> datetime:
        return (datetime.now(UTC) + timedelta(days=5)).replace(microsecond=0)

    async def test_reminds_assigned_writer_once_per_tier(
        self, flow, services, store_group, fanout, actors, deadline
    ):
        order = await flow.assigned(actors.writer_a, deadline_at=deadline)

        sent = await services.deadlines.run_once(now=deadline - timedelta(hours=10))
        again = await services.deadlines.run_once(now=deadline - timedelta(hours=9))

        assert (sent, again) == (1, 0)
        inbox = await fanout.list_for_user(actors.writer_a)
        assert inbox[0].title.startswith("Deadline approaching")
        assert inbox[0].level == NotificationLevel.CRITICAL
        assert await store_group.reminder_store.list_sent_tiers(
            order.order_id, actors.writer_a
        ) == {12}

        trail = await store_group.audit_store.list_for_order(order.order_id)
        assert trail[-1].event_type == AuditEventType.DEADLINE_REMINDER_SENT
        assert trail[-1].actor_id == "system"

    async def test_tighter_tier_sends_again(self, flow, services, store_group, actors, deadline):
        order = await flow.assigned(actors.writer_a, deadline_at=deadline)

        await services.deadlines.run_once(now=deadline - timedelta(hours=20))
        await services.deadlines.run_once(now=deadline - timedelta(minutes=30))

        assert await store_group.reminder_store.list_sent_tiers(
            order.order_id, actors.writer_a
        ) == {24, 1}

    async def test_first_tier_is_warning(self, flow, services, fanout, actors, deadline):
        await flow.assigned(actors.writer_a, deadline_at=deadline)

        await services.deadlines.run_once(now=deadline - timedelta(hours=20))

        inbox = await fanout.list_for_user(actors.writer_a)
        assert inbox[0].level == NotificationLevel.WARNING

    async def test_outside_window_or_unassigned(self, flow, services, actors, deadline):
        await flow.assigned(actors.writer_a, deadline_at=deadline)
        await flow.confirmed(deadline_at=deadline)

        assert await services.deadlines.run_once(now=deadline - timedelta(hours=30)) == 0
        # 已确认但未指派的订单不提醒
        assert await services.deadlines.run_once(now=deadline - timedelta(hours=2)) == 1

    async def test_new_writer_gets_own_reminders(self, flow, services, store_group, actors, deadline):
        order = await flow.assigned(actors.writer_a, deadline_at=deadline)
        await services.deadlines.run_once(now=deadline - timedelta(hours=10))

        await services.recruitment.show_interest(order.order_id, actors.writer_b)
        await services.recruitment.reassign(order.order_id, actors.admin, actors.writer_b)
        sent = await services.deadlines.run_once(now=deadline - timedelta(hours=9))

        assert sent == 1
        assert await store_group.reminder_store.list_sent_tiers(
            order.order_id, actors.writer_b
        ) == {12}

    async def test_pending_qc_not_reminded(self, flow, services, actors, deadline):
        order, _ = await flow.submitted(actors.writer_a, deadline_at=deadline)

        assert order.status == OrderStatus.PENDING_QC
        assert await services.deadlines.run_once(now=deadline - timedelta(hours=3)) == 0
