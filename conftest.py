"""全局 pytest 配置 -- 临时 SQLite StoreGroup + 种子用户 + 工作流服务 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest_asyncio
from assignflow.core.models import Order, Payment, Role, Submission, User
from assignflow.core.store import StoreGroup, create_store_group
from assignflow.core.workflow.deadlines import DeadlineSweeper
from assignflow.core.workflow.notify import NotificationFanout
from assignflow.core.workflow.orders import OrderService
from assignflow.core.workflow.payment import PaymentGate
from assignflow.core.workflow.qc import QCPipeline
from assignflow.core.workflow.quotation import QuotationGate
from assignflow.core.workflow.recruitment import RecruitmentEngine

# 种子用户
ACTORS = SimpleNamespace(
    client="client-1",
    other_client="client-2",
    bde="bde-1",
    other_bde="bde-2",
    admin="admin-1",
    writer_a="writer-a",
    writer_b="writer-b",
    writer_c="writer-c",
    inactive_writer="writer-x",
)


async def seed_users(store_group: StoreGroup) -> None:
    """写入测试用户"""
    users = [
        User(user_id=ACTORS.client, role=Role.CLIENT, full_name="Client One", bde_id=ACTORS.bde),
        User(user_id=ACTORS.other_client, role=Role.CLIENT, full_name="Client Two"),
        User(user_id=ACTORS.bde, role=Role.BDE, full_name="BDE One"),
        User(user_id=ACTORS.other_bde, role=Role.BDE, full_name="BDE Two"),
        User(user_id=ACTORS.admin, role=Role.ADMIN, full_name="Admin"),
        User(user_id=ACTORS.writer_a, role=Role.WRITER, full_name="Writer A"),
        User(user_id=ACTORS.writer_b, role=Role.WRITER, full_name="Writer B"),
        User(user_id=ACTORS.writer_c, role=Role.WRITER, full_name="Writer C"),
        User(
            user_id=ACTORS.inactive_writer,
            role=Role.WRITER,
            full_name="Writer X",
            is_active=False,
        ),
    ]
    async with store_group.transaction():
        for user in users:
            await store_group.user_store.create_user(user)


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """已初始化并写入种子用户的 StoreGroup"""
    sg = await create_store_group(str(tmp_db_path))
    await seed_users(sg)
    yield sg
    await sg.close()


@pytest_asyncio.fixture
async def actors() -> SimpleNamespace:
    return ACTORS


@pytest_asyncio.fixture
async def fanout(store_group: StoreGroup) -> AsyncGenerator[NotificationFanout, None]:
    fo = NotificationFanout(store_group, timeout_s=1.0)
    yield fo
    await fo.drain()


@pytest_asyncio.fixture
async def services(store_group: StoreGroup, fanout: NotificationFanout) -> SimpleNamespace:
    """共享同一 StoreGroup 与扇出器的工作流服务"""
    return SimpleNamespace(
        orders=OrderService(store_group, fanout),
        quotation=QuotationGate(store_group, fanout),
        payment=PaymentGate(store_group, fanout),
        recruitment=RecruitmentEngine(store_group, fanout),
        qc=QCPipeline(store_group, fanout),
        deadlines=DeadlineSweeper(store_group, fanout),
    )


class OrderFlow:
    """把订单推进到指定阶段的测试辅助"""

    def __init__(self, services: SimpleNamespace) -> None:
        self.s = services

    async def pending(self, topic: str = "Macroeconomics essay", **kwargs) -> Order:
        kwargs.setdefault(
            "deadline_at", datetime.now(UTC) + timedelta(days=5)
        )
        order, _ = await self.s.orders.create_order(ACTORS.client, topic=topic, **kwargs)
        return order

    async def quoted(self, price: float = 300.0, **kwargs) -> Order:
        order = await self.pending(**kwargs)
        await self.s.quotation.create_or_update_quotation(
            order.order_id, ACTORS.bde, base_price=price
        )
        return await self.s.orders.get_order(order.order_id)

    async def accepted(self, price: float = 300.0, **kwargs) -> Order:
        order = await self.quoted(price, **kwargs)
        return await self.s.quotation.accept_quotation(order.order_id, ACTORS.client)

    async def paid(self, price: float = 300.0, **kwargs) -> tuple[Order, Payment]:
        order = await self.accepted(price, **kwargs)
        payment = await self.s.payment.submit_payment(
            order.order_id, ACTORS.client, amount=price, method="bank", reference="s3://slip.png"
        )
        return await self.s.orders.get_order(order.order_id), payment

    async def confirmed(self, price: float = 300.0, **kwargs) -> Order:
        order, payment = await self.paid(price, **kwargs)
        _, order = await self.s.payment.verify_payment(payment.payment_id, ACTORS.admin)
        return order

    async def with_interest(self, *writers: str, **kwargs) -> Order:
        order = await self.confirmed(**kwargs)
        await self.s.recruitment.invite(order.order_id, ACTORS.admin, list(writers))
        for writer_id in writers:
            await self.s.recruitment.show_interest(order.order_id, writer_id)
        return order

    async def assigned(self, writer_id: str = ACTORS.writer_a, **kwargs) -> Order:
        order = await self.with_interest(writer_id, **kwargs)
        return await self.s.recruitment.assign(order.order_id, ACTORS.admin, writer_id)

    async def submitted(
        self, writer_id: str = ACTORS.writer_a, **kwargs
    ) -> tuple[Order, Submission]:
        order = await self.assigned(writer_id, **kwargs)
        submission = await self.s.qc.submit_work(
            order.order_id, writer_id, "s3://drafts/v1.docx"
        )
        return await self.s.orders.get_order(order.order_id), submission

    async def approved(self, writer_id: str = ACTORS.writer_a, **kwargs) -> Order:
        order, submission = await self.submitted(writer_id, **kwargs)
        await self.s.qc.approve_submission(submission.submission_id, ACTORS.admin)
        return await self.s.orders.get_order(order.order_id)

    async def delivered(self, writer_id: str = ACTORS.writer_a, **kwargs) -> Order:
        order = await self.approved(writer_id, **kwargs)
        return await self.s.qc.deliver_order(order.order_id, ACTORS.admin)


@pytest_asyncio.fixture
async def flow(services: SimpleNamespace) -> OrderFlow:
    return OrderFlow(services)
