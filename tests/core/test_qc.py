"""QCPipeline 单元测试

测试内容：
1. 写手提交 -> PENDING_QC
2. 审核只针对最新提交
3. 退回修改后重新提交
4. 交付 / 完成与关闭后的拒绝
"""

import pytest
from assignflow.core.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderClosedError,
    UnauthorizedError,
    ValidationError,
)
from assignflow.core.models import AuditEventType, OrderStatus, SubmissionState
from ulid import ULID


class TestSubmitWork:
    async def test_submit_moves_to_pending_qc(self, flow, services, store_group, fanout, actors):
        order, submission = await flow.submitted(actors.writer_a)

        assert order.status == OrderStatus.PENDING_QC
        assert submission.state == SubmissionState.PENDING_QC
        assert submission.writer_id == actors.writer_a
        assert await services.qc.latest_qc_status(order.order_id) == SubmissionState.PENDING_QC

        trail = await store_group.audit_store.list_for_order(order.order_id)
        assert trail[-1].event_type == AuditEventType.WORK_SUBMITTED
        inbox = await fanout.list_for_user(actors.admin)
        assert inbox[0].title.startswith("Work submitted")

    async def test_file_url_required(self, flow, services, actors):
        order = await flow.assigned(actors.writer_a)

        with pytest.raises(ValidationError):
            await services.qc.submit_work(order.order_id, actors.writer_a, "  ")

    async def test_only_assignee_submits(self, flow, services, actors):
        order = await flow.assigned(actors.writer_a)

        with pytest.raises(UnauthorizedError):
            await services.qc.submit_work(order.order_id, actors.writer_b, "s3://x.docx")

    async def test_cannot_submit_twice_while_pending(self, flow, services, actors):
        order, _ = await flow.submitted(actors.writer_a)

        with pytest.raises(InvalidTransitionError):
            await services.qc.submit_work(order.order_id, actors.writer_a, "s3://v2.docx")


class TestReview:
    async def test_approve(self, flow, services, fanout, actors):
        order, submission = await flow.submitted(actors.writer_a)

        approved = await services.qc.approve_submission(
            submission.submission_id, actors.admin, feedback="well structured"
        )

        assert approved.state == SubmissionState.APPROVED
        assert approved.feedback == "well structured"
        assert (await services.orders.get_order(order.order_id)).status == OrderStatus.APPROVED
        inbox = await fanout.list_for_user(actors.writer_a)
        assert inbox[0].level == "success"

    async def test_revision_keeps_assignment(self, flow, services, actors):
        order, submission = await flow.submitted(actors.writer_a)

        revised = await services.qc.request_revision(
            submission.submission_id, actors.admin, feedback="cite sources"
        )

        assert revised.state == SubmissionState.REVISION_REQUIRED
        stored = await services.orders.get_order(order.order_id)
        assert stored.status == OrderStatus.REVISION_REQUIRED
        assert stored.assigned_writer_id == actors.writer_a
        assert stored.work_code == order.work_code

    async def test_revision_requires_feedback(self, flow, services, actors):
        _, submission = await flow.submitted(actors.writer_a)

        with pytest.raises(ValidationError):
            await services.qc.request_revision(submission.submission_id, actors.admin, feedback="")

    async def test_only_latest_submission_reviewable(self, flow, services, actors):
        """新提交出现后，旧提交不可再审核"""
        order, first = await flow.submitted(actors.writer_a)
        await services.qc.request_revision(first.submission_id, actors.admin, feedback="expand")
        second = await services.qc.submit_work(order.order_id, actors.writer_a, "s3://v2.docx")

        with pytest.raises(ConflictError) as exc_info:
            await services.qc.approve_submission(first.submission_id, actors.admin)
        assert "latest" in exc_info.value.message

        await services.qc.approve_submission(second.submission_id, actors.admin)
        submissions = await services.qc.list_submissions(order.order_id)
        assert [s.state for s in submissions] == [
            SubmissionState.REVISION_REQUIRED,
            SubmissionState.APPROVED,
        ]

    async def test_review_twice(self, flow, services, actors):
        _, submission = await flow.submitted(actors.writer_a)
        await services.qc.approve_submission(submission.submission_id, actors.admin)

        with pytest.raises(ConflictError):
            await services.qc.request_revision(submission.submission_id, actors.admin, feedback="x")

    async def test_missing_submission(self, services, actors):
        with pytest.raises(NotFoundError) as exc_info:
            await services.qc.approve_submission(str(ULID()), actors.admin)
        assert exc_info.value.code == "SUBMISSION_NOT_FOUND"

    async def test_writer_cannot_approve(self, flow, services, actors):
        _, submission = await flow.submitted(actors.writer_a)

        with pytest.raises(UnauthorizedError):
            await services.qc.approve_submission(submission.submission_id, actors.writer_a)


class TestDeliverAndComplete:
    async def test_deliver(self, flow, services, store_group, actors):
        order = await flow.delivered(actors.writer_a)

        assert order.status == OrderStatus.DELIVERED
        submissions = await services.qc.list_submissions(order.order_id)
        assert submissions[-1].state == SubmissionState.COMPLETED
        trail = await store_group.audit_store.list_for_order(order.order_id)
        assert trail[-1].event_type == AuditEventType.ORDER_DELIVERED

    async def test_deliver_before_approval(self, flow, services, actors):
        order, _ = await flow.submitted(actors.writer_a)

        with pytest.raises(InvalidTransitionError):
            await services.qc.deliver_order(order.order_id, actors.admin)

    async def test_delivered_order_rejects_qc(self, flow, services, actors):
        order = await flow.delivered(actors.writer_a)

        with pytest.raises(OrderClosedError):
            await services.qc.submit_work(order.order_id, actors.writer_a, "s3://late.docx")
        with pytest.raises(OrderClosedError):
            await services.recruitment.assign(order.order_id, actors.admin, actors.writer_b)

    async def test_complete(self, flow, services, fanout, actors):
        order = await flow.delivered(actors.writer_a)

        completed = await services.qc.complete_order(order.order_id, actors.admin)

        assert completed.status == OrderStatus.COMPLETED
        inbox = await fanout.list_for_user(actors.client)
        assert inbox[0].title.endswith("completed")

    async def test_complete_twice(self, flow, services, actors):
        order = await flow.delivered(actors.writer_a)
        await services.qc.complete_order(order.order_id, actors.admin)

        with pytest.raises(OrderClosedError):
            await services.qc.complete_order(order.order_id, actors.admin)

    async def test_complete_before_delivery(self, flow, services, actors):
        order = await flow.approved(actors.writer_a)

        with pytest.raises(InvalidTransitionError):
            await services.qc.complete_order(order.order_id, actors.admin)
