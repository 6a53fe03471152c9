"""QuotationGate 单元测试"""

import pytest
from assignflow.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from assignflow.core.models import AuditEventType, OrderStatus
from assignflow.core.workflow.quotation import compute_final_price


class TestComputeFinalPrice:
    @pytest.mark.parametrize(
        "base,urgency,discount,explicit,expected",
        [
            (200.0, 0.0, 0.0, None, 200.0),
            (200.0, 50.0, 25.0, None, 225.0),
            (100.0, 0.0, 0.0, 180.456, 180.46),
        ],
    )
    def test_price_formula(self, base, urgency, discount, explicit, expected):
        assert compute_final_price(base, urgency, discount, explicit) == expected

    def test_negative_input(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_final_price(100.0, discount=-5.0)
        assert exc_info.value.details["field"] == "discount"

    def test_non_positive_total(self):
        with pytest.raises(ValidationError):
            compute_final_price(100.0, discount=100.0)


class TestCreateOrUpdateQuotation:
    async def test_quote_moves_to_quotation_sent(self, services, flow, store_group, fanout, actors):
        order = await flow.pending()

        quotation = await services.quotation.create_or_update_quotation(
            order.order_id, actors.bde, base_price=250.0, urgency_charge=30.0, discount=10.0
        )

        assert quotation.final_price == 270.0
        assert quotation.quoted_by == actors.bde
        stored = await store_group.order_store.get_order(order.order_id)
        assert stored.status == OrderStatus.QUOTATION_SENT
        assert stored.basic_price == 250.0
        assert stored.discount == 10.0
        assert stored.total_price == 270.0

        inbox = await fanout.list_for_user(actors.client)
        assert inbox[0].level == "success"
        assert "270.00" in inbox[0].message

    async def test_requote_keeps_single_row(self, services, flow, store_group, actors):
        """重新报价更新同一条记录"""
        order = await flow.quoted(price=300.0)
        first = await store_group.quotation_store.get_for_order(order.order_id)

        second = await services.quotation.create_or_update_quotation(
            order.order_id, actors.admin, base_price=320.0
        )

        assert second.quotation_id == first.quotation_id
        stored = await store_group.quotation_store.get_for_order(order.order_id)
        assert stored.final_price == 320.0
        assert stored.quoted_by == actors.admin

        trail = await store_group.audit_store.list_for_order(order.order_id)
        saved = [e for e in trail if e.event_type == AuditEventType.QUOTATION_SAVED]
        assert len(saved) == 2
        assert saved[-1].before["final_price"] == 300.0

    async def test_admin_requotes_after_acceptance(self, services, flow, actors):
        order = await flow.accepted()

        await services.quotation.create_or_update_quotation(
            order.order_id, actors.admin, base_price=350.0
        )
        assert (await services.orders.get_order(order.order_id)).status == OrderStatus.QUOTATION_SENT

    async def test_bde_cannot_requote_after_acceptance(self, services, flow, actors):
        order = await flow.accepted()

        with pytest.raises(InvalidTransitionError):
            await services.quotation.create_or_update_quotation(
                order.order_id, actors.bde, base_price=350.0
            )

    async def test_missing_order_has_no_side_effects(self, services, store_group, actors):
        with pytest.raises(NotFoundError):
            await services.quotation.create_or_update_quotation(
                "01HZZZZZZZZZZZZZZZZZZZZZZZ", actors.bde, base_price=100.0
            )
        assert await store_group.quotation_store.get_for_order("01HZZZZZZZZZZZZZZZZZZZZZZZ") is None

    async def test_client_cannot_quote(self, services, flow, actors):
        order = await flow.pending()

        with pytest.raises(UnauthorizedError):
            await services.quotation.create_or_update_quotation(
                order.order_id, actors.client, base_price=100.0
            )

    async def test_negative_tax(self, services, flow, actors):
        order = await flow.pending()

        with pytest.raises(ValidationError):
            await services.quotation.create_or_update_quotation(
                order.order_id, actors.bde, base_price=100.0, tax=-1.0
            )


class TestAcceptQuotation:
    async def test_client_accepts(self, services, flow, store_group, fanout, actors):
        order = await flow.quoted()

        accepted = await services.quotation.accept_quotation(order.order_id, actors.client)

        assert accepted.status == OrderStatus.ACCEPTED
        quotation = await store_group.quotation_store.get_for_order(order.order_id)
        assert quotation.accepted_at is not None
        assert await fanout.unread_count(actors.bde) >= 1

    async def test_other_client_cannot_accept(self, services, flow, actors):
        order = await flow.quoted()

        with pytest.raises(UnauthorizedError):
            await services.quotation.accept_quotation(order.order_id, actors.other_client)

    async def test_accept_before_quote(self, services, flow, actors):
        order = await flow.pending()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await services.quotation.accept_quotation(order.order_id, actors.client)
        assert exc_info.value.details["from_status"] == "PENDING_QUERY"

    async def test_accept_twice(self, services, flow, actors):
        order = await flow.accepted()

        with pytest.raises(InvalidTransitionError):
            await services.quotation.accept_quotation(order.order_id, actors.client)
