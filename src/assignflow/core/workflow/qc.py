"""QCPipeline -- 稿件提交、质检、交付与完成

只有订单最新一条提交可被审核；交付后订单关闭，拒绝一切招募与 QC 操作。
"""

import structlog
from ulid import ULID

from ..errors import ConflictError, NotFoundError, OrderClosedError, ValidationError
from ..models.enums import (
    TERMINAL_STATES,
    AuditEventType,
    NotificationLevel,
    OrderStatus,
    Role,
    SubmissionState,
)
from ..models.order import Order
from ..models.submission import Submission
from .base import WorkflowService, order_ref
from .registry import ensure_open, ensure_transition

log = structlog.get_logger()


class QCPipeline(WorkflowService):
    """QC / 交付流水线"""

    async def submit_work(
        self, order_id: str, actor_id: str, file_url: str, notes: str = ""
    ) -> Submission:
        """承接写手提交稿件，订单进入 PENDING_QC"""
        actor = await self._resolve_actor(actor_id, "submit_work", Role.WRITER)
        order = await self._load_order(order_id)
        ensure_open(order)
        self._ensure_party(order, actor)
        if not file_url or not file_url.strip():
            raise ValidationError("file_url is required", details={"field": "file_url"})
        ensure_transition(actor.role, order.status, OrderStatus.PENDING_QC)

        now = self._now()
        submission = Submission(
            submission_id=str(ULID()),
            order_id=order_id,
            writer_id=actor.user_id,
            file_url=file_url.strip(),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        async with self._stores.transaction():
            await self._stores.submission_store.create_submission(submission)
            await self._move(order, OrderStatus.PENDING_QC, now)
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.WORK_SUBMITTED,
                resource_type="submission",
                resource_id=submission.submission_id,
                before={"status": order.status.name},
                after={
                    "status": OrderStatus.PENDING_QC.name,
                    "file_url": submission.file_url,
                },
            )

        log.info(
            "work_submitted",
            order_id=order_id,
            submission_id=submission.submission_id,
            writer_id=actor.user_id,
        )

        await self._notify(
            await self._admin_ids(),
            order,
            title=f"Work submitted for {order_ref(order)}",
            message="A new submission is waiting for QC",
        )
        return submission

    async def approve_submission(
        self, submission_id: str, actor_id: str, feedback: str = ""
    ) -> Submission:
        """QC 通过：提交 approved，订单 PENDING_QC -> APPROVED"""
        submission, order = await self._review(
            submission_id,
            actor_id,
            operation="approve_submission",
            submission_state=SubmissionState.APPROVED,
            order_status=OrderStatus.APPROVED,
            event_type=AuditEventType.SUBMISSION_APPROVED,
            feedback=feedback,
        )
        await self._notify(
            [submission.writer_id],
            order,
            title=f"Submission approved for {order_ref(order)}",
            message=feedback or "Your submission passed QC",
            level=NotificationLevel.SUCCESS,
        )
        return submission

    async def request_revision(
        self, submission_id: str, actor_id: str, feedback: str
    ) -> Submission:
        """QC 退回：提交 revision_required，订单进入 REVISION_REQUIRED

        工作码与写手指派保持不变。
        """
        if not feedback or not feedback.strip():
            raise ValidationError(
                "revision feedback is required", details={"field": "feedback"}
            )
        submission, order = await self._review(
            submission_id,
            actor_id,
            operation="request_revision",
            submission_state=SubmissionState.REVISION_REQUIRED,
            order_status=OrderStatus.REVISION_REQUIRED,
            event_type=AuditEventType.REVISION_REQUESTED,
            feedback=feedback.strip(),
        )
        await self._notify(
            [submission.writer_id],
            order,
            title=f"Revision requested for {order_ref(order)}",
            message=feedback.strip(),
            level=NotificationLevel.WARNING,
        )
        return submission

    async def deliver_order(self, order_id: str, actor_id: str) -> Order:
        """交付：APPROVED -> DELIVERED，最新 approved 提交置为 completed"""
        actor = await self._resolve_actor(actor_id, "deliver_order", Role.ADMIN)
        order = await self._load_order(order_id)
        ensure_open(order)
        ensure_transition(actor.role, order.status, OrderStatus.DELIVERED)

        latest = await self._stores.submission_store.get_latest_for_order(order_id)
        if latest is None or latest.state != SubmissionState.APPROVED:
            raise ConflictError(
                f"order {order_id} has no approved submission to deliver"
            )

        now = self._now()
        async with self._stores.transaction():
            await self._move(order, OrderStatus.DELIVERED, now)
            completed = await self._stores.submission_store.update_state(
                latest.submission_id,
                SubmissionState.APPROVED,
                SubmissionState.COMPLETED,
                now.isoformat(),
            )
            if not completed:
                raise ConflictError(
                    f"submission {latest.submission_id} changed concurrently; refresh and retry"
                )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.ORDER_DELIVERED,
                resource_type="order",
                resource_id=order_id,
                before={"status": order.status.name},
                after={
                    "status": OrderStatus.DELIVERED.name,
                    "submission_id": latest.submission_id,
                },
            )

        log.info("order_delivered", order_id=order_id, submission_id=latest.submission_id)

        order = order.model_copy(
            update={"status": OrderStatus.DELIVERED, "updated_at": now}
        )
        await self._notify(
            [order.client_id, order.assigned_writer_id],
            order,
            title=f"Order {order_ref(order)} delivered",
            message="The final work has been delivered",
            level=NotificationLevel.SUCCESS,
        )
        return order

    async def complete_order(self, order_id: str, actor_id: str) -> Order:
        """完成：DELIVERED -> COMPLETED（终态）"""
        actor = await self._resolve_actor(actor_id, "complete_order", Role.ADMIN)
        order = await self._load_order(order_id)
        if order.status in TERMINAL_STATES:
            raise OrderClosedError(order_id, order.status)
        ensure_transition(actor.role, order.status, OrderStatus.COMPLETED)

        now = self._now()
        async with self._stores.transaction():
            await self._move(order, OrderStatus.COMPLETED, now)
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.ORDER_COMPLETED,
                resource_type="order",
                resource_id=order_id,
                before={"status": order.status.name},
                after={"status": OrderStatus.COMPLETED.name},
            )

        log.info("order_completed", order_id=order_id)

        order = order.model_copy(
            update={"status": OrderStatus.COMPLETED, "updated_at": now}
        )
        await self._notify(
            [order.client_id, order.assigned_writer_id],
            order,
            title=f"Order {order_ref(order)} completed",
            message="The order is complete",
            level=NotificationLevel.SUCCESS,
        )
        return order

    async def latest_qc_status(self, order_id: str) -> SubmissionState | None:
        """最新一条提交的 QC 状态，无提交时为 None"""
        await self._load_order(order_id)
        latest = await self._stores.submission_store.get_latest_for_order(order_id)
        return latest.state if latest else None

    async def list_submissions(self, order_id: str) -> list[Submission]:
        await self._load_order(order_id)
        return await self._stores.submission_store.list_for_order(order_id)

    async def _review(
        self,
        submission_id: str,
        actor_id: str,
        *,
        operation: str,
        submission_state: SubmissionState,
        order_status: OrderStatus,
        event_type: AuditEventType,
        feedback: str,
    ) -> tuple[Submission, Order]:
        actor = await self._resolve_actor(actor_id, operation, Role.ADMIN)
        submission = await self._stores.submission_store.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("submission", submission_id)
        order = await self._load_order(submission.order_id)
        ensure_open(order)

        latest = await self._stores.submission_store.get_latest_for_order(order.order_id)
        if latest is None or latest.submission_id != submission_id:
            raise ConflictError(
                f"submission {submission_id} is not the latest for order "
                f"{order.order_id}; only the latest submission can be reviewed"
            )
        if submission.state != SubmissionState.PENDING_QC:
            raise ConflictError(
                f"submission {submission_id} is {submission.state}; requires pending_qc"
            )
        ensure_transition(actor.role, order.status, order_status)

        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.submission_store.update_state(
                submission_id,
                SubmissionState.PENDING_QC,
                submission_state,
                now.isoformat(),
                feedback=feedback or None,
            )
            if not updated:
                raise ConflictError(
                    f"submission {submission_id} was reviewed concurrently; refresh and retry"
                )
            await self._move(order, order_status, now)
            await self._audit.record(
                order_id=order.order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=event_type,
                resource_type="submission",
                resource_id=submission_id,
                before={
                    "status": order.status.name,
                    "submission_state": submission.state.value,
                },
                after={
                    "status": order_status.name,
                    "submission_state": submission_state.value,
                    "feedback": feedback,
                },
            )

        log.info(
            "submission_reviewed",
            order_id=order.order_id,
            submission_id=submission_id,
            result=submission_state.value,
        )

        submission = submission.model_copy(
            update={
                "state": submission_state,
                "feedback": feedback or submission.feedback,
                "updated_at": now,
            }
        )
        order = order.model_copy(update={"status": order_status, "updated_at": now})
        return submission, order

    async def _move(self, order: Order, target: OrderStatus, now) -> None:
        updated = await self._stores.order_store.update_status(
            order.order_id, order.status, target, now.isoformat()
        )
        if not updated:
            raise ConflictError(
                f"order {order.order_id} is no longer {order.status.name}; refresh and retry"
            )
