"""OrderService 单元测试

测试内容：
1. 下单：查询码、审计、通知、幂等键
2. 输入校验：题目、截止时间
3. 操作者解析：未知 / 停用 / 角色不符
4. 通用流转：闸门目标拒绝、读取过期、所有权
5. 可见范围与聊天访问三元组
"""

from datetime import UTC, datetime, timedelta

import pytest
from assignflow.core.config import (
    QUERY_CODE_MAX_RETRIES,
    QUERY_CODE_PREFIX,
    QUERY_CODE_RANDOM_LENGTH,
)
from assignflow.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from assignflow.core.models import AuditEventType, OrderStatus, PaymentState
from assignflow.core.workflow import orders as orders_module
from assignflow.core.workflow.orders import generate_query_code, parse_deadline


class TestCreateOrder:
    async def test_creates_pending_query(self, services, store_group, actors):
        """新订单进入 PENDING_QUERY 并带查询码"""
        order, created = await services.orders.create_order(
            actors.client,
            topic="  Renewable energy policy essay ",
            subject="Economics",
            deadline_at=datetime.now(UTC) + timedelta(days=3),
        )

        assert created is True
        assert order.status == OrderStatus.PENDING_QUERY
        assert order.topic == "Renewable energy policy essay"
        assert order.query_code.startswith(QUERY_CODE_PREFIX)
        assert order.work_code is None
        assert order.assigned_writer_id is None

        stored = await store_group.order_store.get_order(order.order_id)
        assert stored.query_code == order.query_code

    async def test_writes_single_audit_entry(self, services, store_group, actors):
        order, _ = await services.orders.create_order(actors.client, topic="Lab report")

        trail = await store_group.audit_store.list_for_order(order.order_id)
        assert len(trail) == 1
        assert trail[0].event_type == AuditEventType.ORDER_CREATED
        assert trail[0].actor_id == actors.client
        assert trail[0].order_seq == 1

    async def test_notifies_owning_bde_and_admins(self, services, fanout, actors):
        """客户有负责 BDE 时只通知该 BDE 与管理员"""
        await services.orders.create_order(actors.client, topic="Case study")

        assert await fanout.unread_count(actors.bde) == 1
        assert await fanout.unread_count(actors.admin) == 1
        assert await fanout.unread_count(actors.other_bde) == 0
        assert await fanout.unread_count(actors.client) == 0

    async def test_unowned_client_notifies_all_bdes(self, services, fanout, actors):
        await services.orders.create_order(actors.other_client, topic="Case study")

        assert await fanout.unread_count(actors.bde) == 1
        assert await fanout.unread_count(actors.other_bde) == 1

    async def test_idempotency_key_returns_existing(self, services, store_group, actors):
        first, created_first = await services.orders.create_order(
            actors.client, topic="Essay", idempotency_key="req-123"
        )
        second, created_second = await services.orders.create_order(
            actors.client, topic="Essay", idempotency_key="req-123"
        )

        assert created_first is True
        assert created_second is False
        assert second.order_id == first.order_id
        orders = await store_group.order_store.list_orders(client_id=actors.client)
        assert len(orders) == 1

    @pytest.mark.parametrize("topic", ["", "   "])
    async def test_blank_topic_rejected(self, services, actors, topic):
        with pytest.raises(ValidationError) as exc_info:
            await services.orders.create_order(actors.client, topic=topic)
        assert exc_info.value.details["field"] == "topic"

    async def test_past_deadline_rejected(self, services, actors):
        with pytest.raises(ValidationError):
            await services.orders.create_order(
                actors.client,
                topic="Essay",
                deadline_at=datetime.now(UTC) - timedelta(hours=1),
            )

    async def test_malformed_deadline_rejected(self, services, actors):
        with pytest.raises(ValidationError) as exc_info:
            await services.orders.create_order(
                actors.client, topic="Essay", deadline_at="next tuesday"
            )
        assert "ISO-8601" in exc_info.value.message

    async def test_non_client_cannot_create(self, services, actors):
        with pytest.raises(UnauthorizedError) as exc_info:
            await services.orders.create_order(actors.writer_a, topic="Essay")
        assert "client" in exc_info.value.message

    async def test_unknown_actor(self, services):
        with pytest.raises(UnauthorizedError):
            await services.orders.create_order("ghost", topic="Essay")


class TestQueryCode:
    def test_format(self):
        code = generate_query_code()
        suffix = code[len(QUERY_CODE_PREFIX):]
        assert code.startswith(QUERY_CODE_PREFIX)
        assert len(suffix) == QUERY_CODE_RANDOM_LENGTH
        assert suffix.isalnum() and suffix.upper() == suffix

    def test_parse_deadline_naive_is_utc(self):
        now = datetime(2030, 1, 1, tzinfo=UTC)
        parsed = parse_deadline("2030-01-02T10:00:00", now)
        assert parsed == datetime(2030, 1, 2, 10, 0, tzinfo=UTC)

    def test_parse_deadline_empty(self):
        assert parse_deadline(None, datetime.now(UTC)) is None
        assert parse_deadline("", datetime.now(UTC)) is None

    async def test_collision_retries_with_new_code(self, services, monkeypatch, actors):
        codes = iter(["QUERY_DUPLICAT", "QUERY_DUPLICAT", "QUERY_FRESH001"])
        monkeypatch.setattr(orders_module, "generate_query_code", lambda: next(codes))

        first, _ = await services.orders.create_order(actors.client, topic="First")
        second, _ = await services.orders.create_order(actors.client, topic="Second")

        assert first.query_code == "QUERY_DUPLICAT"
        assert second.query_code == "QUERY_FRESH001"

    async def test_collision_retries_exhausted(self, services, monkeypatch, actors):
        calls: list[str] = []

        def duplicate_code() -> str:
            calls.append("QUERY_DUPLICAT")
            return "QUERY_DUPLICAT"

        monkeypatch.setattr(orders_module, "generate_query_code", duplicate_code)
        await services.orders.create_order(actors.client, topic="First")
        calls.clear()

        with pytest.raises(ConflictError):
            await services.orders.create_order(actors.client, topic="Second")

        assert len(calls) == QUERY_CODE_MAX_RETRIES
        orders = await services.orders.list_orders(actors.client)
        assert [o.topic for o in orders] == ["First"]


class TestTransitionStatus:
    async def test_cancelled_confirmed_order_keeps_work_code(self, services, flow, store_group, actors):
        """确认后取消：工作码保留，不会被其他订单复用"""
        order = await flow.confirmed()

        cancelled = await services.orders.transition_status(
            order.order_id, actors.admin, OrderStatus.CANCELLED, reason="client withdrew"
        )

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.work_code == order.work_code
        stored = await store_group.order_store.get_order(order.order_id)
        assert stored.work_code == order.work_code
        verified = [
            p for p in await store_group.payment_store.list_for_order(order.order_id)
            if p.state == PaymentState.VERIFIED
        ]
        assert len(verified) == 1

    async def test_client_cancels_pending(self, services, flow, store_group, actors):
        order = await flow.pending()

        updated = await services.orders.transition_status(
            order.order_id, actors.client, OrderStatus.CANCELLED, reason="changed plans"
        )

        assert updated.status == OrderStatus.CANCELLED
        trail = await store_group.audit_store.list_for_order(order.order_id)
        assert trail[-1].event_type == AuditEventType.STATUS_CHANGED
        assert trail[-1].before == {"status": "PENDING_QUERY"}
        assert trail[-1].after["status"] == "CANCELLED"

    @pytest.mark.parametrize(
        "target",
        [
            OrderStatus.CONFIRMED,
            OrderStatus.WRITER_ASSIGNED,
            OrderStatus.QUOTATION_SENT,
            OrderStatus.DELIVERED,
        ],
    )
    async def test_gated_targets_rejected(self, services, flow, actors, target):
        """闸门目标即使是管理员也不能经由通用流转到达"""
        order = await flow.pending()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await services.orders.transition_status(order.order_id, actors.admin, target)
        assert exc_info.value.code == "GATED_TRANSITION"

    async def test_stale_expected_status(self, services, flow, actors):
        order = await flow.quoted()

        with pytest.raises(ConflictError) as exc_info:
            await services.orders.transition_status(
                order.order_id,
                actors.client,
                OrderStatus.CANCELLED,
                expected_status=OrderStatus.PENDING_QUERY,
            )
        assert exc_info.value.details["current_status"] == "QUOTATION_SENT"

    async def test_role_not_allowed(self, services, flow, actors):
        order = await flow.pending()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await services.orders.transition_status(
                order.order_id, actors.bde, OrderStatus.CANCELLED
            )
        assert exc_info.value.details["from_status"] == "PENDING_QUERY"
        assert "admin" in exc_info.value.message

    async def test_other_client_cannot_cancel(self, services, flow, actors):
        order = await flow.pending()

        with pytest.raises(UnauthorizedError):
            await services.orders.transition_status(
                order.order_id, actors.other_client, OrderStatus.CANCELLED
            )

    async def test_writer_starts_work(self, services, flow, actors):
        order = await flow.assigned(actors.writer_a)

        updated = await services.orders.transition_status(
            order.order_id, actors.writer_a, OrderStatus.IN_PROGRESS
        )
        assert updated.status == OrderStatus.IN_PROGRESS

    async def test_unassigned_writer_cannot_start(self, services, flow, actors):
        order = await flow.assigned(actors.writer_a)

        with pytest.raises(UnauthorizedError):
            await services.orders.transition_status(
                order.order_id, actors.writer_b, OrderStatus.IN_PROGRESS
            )

    async def test_bde_rejects_query(self, services, flow, fanout, actors):
        order = await flow.pending()

        updated = await services.orders.transition_status(
            order.order_id, actors.bde, OrderStatus.QUERY_REJECTED, reason="out of scope"
        )

        assert updated.status == OrderStatus.QUERY_REJECTED
        inbox = await fanout.list_for_user(actors.client)
        assert inbox[0].message == "out of scope"
        assert inbox[0].level == "warning"

    async def test_terminal_state_has_no_exit(self, services, flow, actors):
        order = await flow.pending()
        await services.orders.transition_status(
            order.order_id, actors.client, OrderStatus.CANCELLED
        )

        with pytest.raises(InvalidTransitionError):
            await services.orders.transition_status(
                order.order_id, actors.admin, OrderStatus.PENDING_QUERY
            )

    async def test_missing_order(self, services, actors):
        with pytest.raises(NotFoundError) as exc_info:
            await services.orders.transition_status(
                "01HZZZZZZZZZZZZZZZZZZZZZZZ", actors.admin, OrderStatus.CANCELLED
            )
        assert exc_info.value.code == "ORDER_NOT_FOUND"

    async def test_inactive_actor(self, services, flow, actors):
        order = await flow.assigned(actors.writer_a)

        with pytest.raises(UnauthorizedError) as exc_info:
            await services.orders.transition_status(
                order.order_id, actors.inactive_writer, OrderStatus.IN_PROGRESS
            )
        assert "inactive" in exc_info.value.message


class TestReadSurface:
    async def test_list_orders_scoped_by_role(self, services, flow, actors):
        mine = await flow.pending(topic="Mine")
        await services.orders.create_order(actors.other_client, topic="Theirs")
        assigned = await flow.assigned(actors.writer_b)

        client_view = await services.orders.list_orders(actors.client)
        writer_view = await services.orders.list_orders(actors.writer_b)
        admin_view = await services.orders.list_orders(actors.admin)

        assert {o.order_id for o in client_view} == {mine.order_id, assigned.order_id}
        assert [o.order_id for o in writer_view] == [assigned.order_id]
        assert len(admin_view) == 3

    async def test_list_orders_status_filter(self, services, flow, actors):
        await flow.pending()
        quoted = await flow.quoted()

        result = await services.orders.list_orders(
            actors.admin, status=OrderStatus.QUOTATION_SENT
        )
        assert [o.order_id for o in result] == [quoted.order_id]

    async def test_allowed_next(self, services, flow, actors):
        order = await flow.quoted()

        assert await services.orders.allowed_next(order.order_id, actors.client) == [
            OrderStatus.ACCEPTED,
            OrderStatus.CANCELLED,
        ]
        assert await services.orders.allowed_next(order.order_id, actors.writer_a) == []

    async def test_access_tuple(self, services, flow, actors):
        order = await flow.assigned(actors.writer_a)

        access = await services.orders.access_tuple(order.order_id)
        assert access.client_id == actors.client
        assert access.writer_id == actors.writer_a
        assert access.bde_id == actors.bde

    async def test_view_order_writer_visibility(self, services, flow, actors):
        """被邀请的写手可见，无关写手不可见"""
        order = await flow.confirmed()
        await services.recruitment.invite(order.order_id, actors.admin, [actors.writer_a])

        viewed = await services.orders.view_order(order.order_id, actors.writer_a)
        assert viewed.order_id == order.order_id
        with pytest.raises(UnauthorizedError):
            await services.orders.view_order(order.order_id, actors.writer_b)

    async def test_view_order_client_ownership(self, services, flow, actors):
        order = await flow.pending()

        assert (await services.orders.view_order(order.order_id, actors.client)).order_id == order.order_id
        with pytest.raises(UnauthorizedError):
            await services.orders.view_order(order.order_id, actors.other_client)
