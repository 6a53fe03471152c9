"""RecruitmentEngine -- 写手招募状态机

每个 (order, writer) 一行 WriterInterest：
invited -> interested -> assigned -> revoked / released，invited -> rejected。
订单的 assigned_writer_id 只由这里写入，并与 assigned 行在同一事务内保持一致：
任意时刻至多一个 assigned 行，且它就是订单的当前写手。
"""

import aiosqlite
import structlog
from ulid import ULID

from ..config import NOT_DOABLE_MIN_REASON_LENGTH
from ..errors import (
    ConflictError,
    DuplicateInterestError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..models.enums import (
    AuditEventType,
    EvaluationState,
    InterestState,
    NotificationLevel,
    OrderStatus,
    Role,
)
from ..models.interest import InviteResult, TaskEvaluation, WriterInterest
from ..models.order import Order
from ..models.user import User
from .base import WorkflowService, is_unique_violation, order_ref
from .registry import ensure_open, ensure_transition

log = structlog.get_logger()

# 可被重新邀请的状态
_REOPENABLE = (InterestState.REJECTED, InterestState.REVOKED, InterestState.RELEASED)

# 可被指派的状态（accepted 为历史同义词）
_ASSIGNABLE = (InterestState.INTERESTED, InterestState.ACCEPTED)


class RecruitmentEngine(WorkflowService):
    """写手招募引擎"""

    async def invite(
        self,
        order_id: str,
        actor_id: str,
        writer_ids: list[str],
        note: str = "",
    ) -> InviteResult:
        """邀请一批写手

        已 invited 的写手不变；rejected / revoked / released 重新打开为 invited；
        interested / assigned 不改动，记为 skipped。

        Raises:
            ValidationError: 写手列表为空，或包含非写手 / 已停用账号
            NotFoundError: 写手不存在
        """
        actor = await self._resolve_actor(actor_id, "invite", Role.ADMIN)
        order = await self._load_order(order_id)
        ensure_open(order)

        unique_ids = list(dict.fromkeys(w for w in writer_ids if w))
        if not unique_ids:
            raise ValidationError(
                "at least one writer id is required", details={"field": "writer_ids"}
            )
        for writer_id in unique_ids:
            await self._load_writer(writer_id)

        result = InviteResult(order_id=order_id)
        now = self._now()
        async with self._stores.transaction():
            for writer_id in unique_ids:
                interest = await self._stores.interest_store.get_interest(
                    order_id, writer_id
                )
                if interest is None:
                    await self._stores.interest_store.insert_interest(
                        WriterInterest(
                            interest_id=str(ULID()),
                            order_id=order_id,
                            writer_id=writer_id,
                            state=InterestState.INVITED,
                            comment=note,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    result.invited.append(writer_id)
                elif interest.state == InterestState.INVITED:
                    result.already_invited.append(writer_id)
                elif interest.state in _REOPENABLE:
                    await self._cas_interest(
                        interest, _REOPENABLE, InterestState.INVITED, now, comment=note
                    )
                    result.invited.append(writer_id)
                else:
                    result.skipped.append(writer_id)

            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.WRITERS_INVITED,
                resource_type="order",
                resource_id=order_id,
                after={
                    "invited": result.invited,
                    "already_invited": result.already_invited,
                    "skipped": result.skipped,
                },
            )

        log.info(
            "writers_invited",
            order_id=order_id,
            invited=len(result.invited),
            already_invited=len(result.already_invited),
            skipped=len(result.skipped),
        )

        await self._notify(
            [*result.invited, *result.already_invited],
            order,
            title=f"Invitation to work on {order_ref(order)}",
            message=note or f"You are invited to show interest in: {order.topic}",
        )
        return result

    async def show_interest(
        self, order_id: str, actor_id: str, comment: str = ""
    ) -> WriterInterest:
        """写手表达兴趣：invited -> interested，无记录时新建（开放报名）

        Raises:
            DuplicateInterestError: 已经 interested
            InvalidTransitionError: 已拒绝 / 已指派 / 已撤回 / 已释放
        """
        actor = await self._resolve_actor(actor_id, "show_interest", Role.WRITER)
        order = await self._load_order(order_id)
        ensure_open(order)

        interest = await self._stores.interest_store.get_interest(
            order_id, actor.user_id
        )
        if interest is not None and interest.is_interested:
            raise DuplicateInterestError(
                f"writer {actor.user_id} already showed interest in order {order_id}"
            )
        if interest is not None and interest.state != InterestState.INVITED:
            raise InvalidTransitionError(
                f"cannot show interest from state '{interest.state}'; requires invited",
                role=actor.role,
            )

        now = self._now()
        try:
            async with self._stores.transaction():
                if interest is None:
                    interest = WriterInterest(
                        interest_id=str(ULID()),
                        order_id=order_id,
                        writer_id=actor.user_id,
                        state=InterestState.INTERESTED,
                        comment=comment,
                        created_at=now,
                        updated_at=now,
                    )
                    await self._stores.interest_store.insert_interest(interest)
                    before_state = None
                else:
                    await self._cas_interest(
                        interest,
                        (InterestState.INVITED,),
                        InterestState.INTERESTED,
                        now,
                        comment=comment,
                    )
                    before_state = interest.state.value
                await self._audit.record(
                    order_id=order_id,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                    event_type=AuditEventType.INTEREST_SHOWN,
                    resource_type="writer_interest",
                    resource_id=interest.interest_id,
                    before={"state": before_state},
                    after={"state": InterestState.INTERESTED.value, "comment": comment},
                )
        except aiosqlite.IntegrityError as e:
            if is_unique_violation(e, "writer_interests"):
                raise DuplicateInterestError(
                    f"writer {actor.user_id} already has an interest row for order {order_id}"
                ) from e
            raise

        log.info("interest_shown", order_id=order_id, writer_id=actor.user_id)

        interest = interest.model_copy(
            update={
                "state": InterestState.INTERESTED,
                "comment": comment,
                "updated_at": now,
            }
        )
        await self._notify(
            await self._admin_ids(),
            order,
            title=f"Writer interested in {order_ref(order)}",
            message=f"Writer {actor.full_name or actor.user_id} is interested",
        )
        return interest

    async def decline(
        self, order_id: str, actor_id: str, reason: str
    ) -> WriterInterest:
        """写手拒绝邀请：invited -> rejected，理由必填"""
        actor = await self._resolve_actor(actor_id, "decline", Role.WRITER)
        if not reason or not reason.strip():
            raise ValidationError(
                "decline reason is required", details={"field": "reason"}
            )
        order = await self._load_order(order_id)
        ensure_open(order)

        interest = await self._stores.interest_store.get_interest(
            order_id, actor.user_id
        )
        if interest is None:
            raise NotFoundError("invitation", f"{order_id}/{actor.user_id}")
        if interest.state != InterestState.INVITED:
            raise InvalidTransitionError(
                f"cannot decline from state '{interest.state}'; requires invited",
                role=actor.role,
            )

        now = self._now()
        async with self._stores.transaction():
            await self._cas_interest(
                interest,
                (InterestState.INVITED,),
                InterestState.REJECTED,
                now,
                comment=reason.strip(),
            )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.INVITATION_DECLINED,
                resource_type="writer_interest",
                resource_id=interest.interest_id,
                before={"state": interest.state.value},
                after={"state": InterestState.REJECTED.value, "reason": reason.strip()},
            )

        log.info("invitation_declined", order_id=order_id, writer_id=actor.user_id)

        await self._notify(
            await self._admin_ids(),
            order,
            title=f"Invitation declined for {order_ref(order)}",
            message=f"Writer {actor.full_name or actor.user_id} declined: {reason.strip()}",
        )
        return interest.model_copy(
            update={
                "state": InterestState.REJECTED,
                "comment": reason.strip(),
                "updated_at": now,
            }
        )

    async def assign(self, order_id: str, actor_id: str, writer_id: str) -> Order:
        """指派写手：订单进入 WRITER_ASSIGNED，其他 assigned 行全部释放

        Raises:
            InvalidTransitionError: 订单状态不允许指派，或写手未表达兴趣
            NotFoundError: 写手不存在
            ValidationError: 写手已停用或不是写手角色
            ConflictError: 并发指派竞争失败（刷新后重新选择）
        """
        actor = await self._resolve_actor(actor_id, "assign", Role.ADMIN)
        order = await self._load_order(order_id)
        ensure_open(order)
        ensure_transition(actor.role, order.status, OrderStatus.WRITER_ASSIGNED)
        if order.assigned_writer_id == writer_id:
            raise ConflictError(
                f"writer {writer_id} is already assigned to order {order_id}"
            )

        await self._load_writer(writer_id, field="writer_id")
        interest = await self._assignable_interest(order_id, writer_id)
        displaced = [
            row
            for row in await self._stores.interest_store.list_assigned(order_id)
            if row.writer_id != writer_id
        ]

        order = await self._apply_assignment(
            order,
            actor,
            interest,
            displaced,
            event_type=AuditEventType.WRITER_ASSIGNED,
        )

        await self._notify(
            [writer_id],
            order,
            title=f"You have been assigned {order_ref(order)}",
            message=f"You were selected to work on: {order.topic}",
            level=NotificationLevel.SUCCESS,
        )
        await self._notify(
            [row.writer_id for row in displaced],
            order,
            title=f"Assignment released for {order_ref(order)}",
            message="The order has been assigned to another writer",
            level=NotificationLevel.WARNING,
        )
        await self._notify(
            [order.client_id],
            order,
            title=f"Writer assigned to {order_ref(order)}",
            message="A writer has been assigned to your order",
        )
        return order

    async def revoke(self, order_id: str, actor_id: str, reason: str = "") -> Order:
        """撤回当前写手：订单回到 CONFIRMED（等待分配）"""
        actor = await self._resolve_actor(actor_id, "revoke", Role.ADMIN)
        order = await self._load_order(order_id)
        ensure_open(order)
        writer_id = self._require_assignee(order)
        ensure_transition(actor.role, order.status, OrderStatus.AWAITING_ASSIGNMENT)

        interest = await self._stores.interest_store.get_interest(order_id, writer_id)
        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.order_store.set_assignment(
                order_id,
                order.status,
                writer_id,
                None,
                OrderStatus.AWAITING_ASSIGNMENT,
                now.isoformat(),
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} changed concurrently; refresh and retry"
                )
            if interest is not None:
                await self._cas_interest(
                    interest,
                    (InterestState.ASSIGNED,),
                    InterestState.REVOKED,
                    now,
                    comment=reason,
                )
            await self._stores.evaluation_store.release(
                order_id, writer_id, now.isoformat()
            )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.WRITER_REVOKED,
                resource_type="writer_interest",
                resource_id=interest.interest_id if interest else writer_id,
                before={"status": order.status.name, "writer_id": writer_id},
                after={
                    "status": OrderStatus.AWAITING_ASSIGNMENT.name,
                    "writer_id": None,
                    "reason": reason,
                },
            )

        log.info("writer_revoked", order_id=order_id, writer_id=writer_id)

        order = order.model_copy(
            update={
                "status": OrderStatus.AWAITING_ASSIGNMENT,
                "assigned_writer_id": None,
                "updated_at": now,
            }
        )
        await self._notify(
            [writer_id],
            order,
            title=f"Assignment revoked for {order_ref(order)}",
            message=reason or "You have been removed from this order",
            level=NotificationLevel.WARNING,
        )
        return order

    async def reassign(
        self, order_id: str, actor_id: str, writer_id: str, reason: str = ""
    ) -> Order:
        """改派：旧写手 released，新写手 assigned，同一事务"""
        actor = await self._resolve_actor(actor_id, "reassign", Role.ADMIN)
        order = await self._load_order(order_id)
        ensure_open(order)
        current = self._require_assignee(order)
        if current == writer_id:
            raise ValidationError(
                f"writer {writer_id} is already the assignee of order {order_id}",
                details={"field": "writer_id"},
            )
        ensure_transition(actor.role, order.status, OrderStatus.WRITER_ASSIGNED)

        await self._load_writer(writer_id, field="writer_id")
        interest = await self._assignable_interest(order_id, writer_id)
        displaced = await self._stores.interest_store.list_assigned(order_id)

        order = await self._apply_assignment(
            order,
            actor,
            interest,
            displaced,
            event_type=AuditEventType.WRITER_REASSIGNED,
            reason=reason,
        )

        await self._notify(
            [current],
            order,
            title=f"Order {order_ref(order)} reassigned",
            message=reason or "The order has been reassigned to another writer",
            level=NotificationLevel.WARNING,
        )
        await self._notify(
            [writer_id],
            order,
            title=f"You have been assigned {order_ref(order)}",
            message=f"You were selected to take over: {order.topic}",
            level=NotificationLevel.SUCCESS,
        )
        return order

    async def evaluate_task(
        self, order_id: str, actor_id: str, doable: bool, comment: str = ""
    ) -> TaskEvaluation:
        """承接写手评估任务可行性；不可完成时订单进入 WRITER_REJECTED_TASK"""
        actor = await self._resolve_actor(actor_id, "evaluate_task", Role.WRITER)
        order = await self._load_order(order_id)
        ensure_open(order)
        self._ensure_party(order, actor)

        comment = comment.strip()
        if not doable and len(comment) < NOT_DOABLE_MIN_REASON_LENGTH:
            raise ValidationError(
                f"a not-doable evaluation needs a reason of at least "
                f"{NOT_DOABLE_MIN_REASON_LENGTH} characters",
                details={"field": "comment"},
            )

        evaluation = await self._stores.evaluation_store.get_evaluation(
            order_id, actor.user_id
        )
        if evaluation is None or evaluation.state != EvaluationState.PENDING:
            raise ConflictError(
                f"no pending evaluation for writer {actor.user_id} on order {order_id}"
            )
        new_state = EvaluationState.DOABLE if doable else EvaluationState.NOT_DOABLE
        if not doable:
            ensure_transition(
                actor.role, order.status, OrderStatus.WRITER_REJECTED_TASK
            )

        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.evaluation_store.update_state(
                order_id,
                actor.user_id,
                EvaluationState.PENDING,
                new_state,
                comment,
                now.isoformat(),
            )
            if not updated:
                raise ConflictError(
                    f"evaluation for order {order_id} changed concurrently; refresh and retry"
                )
            if not doable:
                moved = await self._stores.order_store.update_status(
                    order_id,
                    order.status,
                    OrderStatus.WRITER_REJECTED_TASK,
                    now.isoformat(),
                )
                if not moved:
                    raise ConflictError(
                        f"order {order_id} is no longer {order.status.name}; refresh and retry"
                    )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=AuditEventType.TASK_EVALUATED,
                resource_type="task_evaluation",
                resource_id=evaluation.evaluation_id,
                before={"state": evaluation.state.value, "status": order.status.name},
                after={
                    "state": new_state.value,
                    "status": (
                        order.status.name
                        if doable
                        else OrderStatus.WRITER_REJECTED_TASK.name
                    ),
                    "comment": comment,
                },
            )

        log.info(
            "task_evaluated",
            order_id=order_id,
            writer_id=actor.user_id,
            doable=doable,
        )

        if not doable:
            order = order.model_copy(
                update={"status": OrderStatus.WRITER_REJECTED_TASK, "updated_at": now}
            )
            await self._notify(
                await self._admin_ids(),
                order,
                title=f"Writer rejected task {order_ref(order)}",
                message=comment,
                level=NotificationLevel.WARNING,
            )
        return evaluation.model_copy(
            update={"state": new_state, "comment": comment, "updated_at": now}
        )

    # ---- 查询面 ----

    async def current_assignee(self, order_id: str) -> str | None:
        order = await self._load_order(order_id)
        return order.assigned_writer_id

    async def list_interests(self, order_id: str) -> list[WriterInterest]:
        await self._load_order(order_id)
        return await self._stores.interest_store.list_for_order(order_id)

    async def list_evaluations(self, order_id: str) -> list[TaskEvaluation]:
        await self._load_order(order_id)
        return await self._stores.evaluation_store.list_for_order(order_id)

    # ---- 内部 ----

    async def _apply_assignment(
        self,
        order: Order,
        actor: User,
        interest: WriterInterest,
        displaced: list[WriterInterest],
        *,
        event_type: AuditEventType,
        reason: str = "",
    ) -> Order:
        """在一个事务内切换订单写手

        顺序：订单 CAS（状态 + 原写手）-> 释放其他 assigned 行 -> 新行 CAS -> 重置评估。
        任一 CAS 落空即整体回滚并抛出 ConflictError。
        """
        order_id = order.order_id
        writer_id = interest.writer_id
        now = self._now()
        async with self._stores.transaction():
            updated = await self._stores.order_store.set_assignment(
                order_id,
                order.status,
                order.assigned_writer_id,
                writer_id,
                OrderStatus.WRITER_ASSIGNED,
                now.isoformat(),
            )
            if not updated:
                raise ConflictError(
                    f"order {order_id} was assigned concurrently; refresh and choose again"
                )
            for row in displaced:
                await self._cas_interest(
                    row, (InterestState.ASSIGNED,), InterestState.RELEASED, now
                )
                await self._stores.evaluation_store.release(
                    order_id, row.writer_id, now.isoformat()
                )
            await self._cas_interest(interest, _ASSIGNABLE, InterestState.ASSIGNED, now)
            await self._stores.evaluation_store.reset_pending(
                TaskEvaluation(
                    evaluation_id=str(ULID()),
                    order_id=order_id,
                    writer_id=writer_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self._audit.record(
                order_id=order_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                event_type=event_type,
                resource_type="writer_interest",
                resource_id=interest.interest_id,
                before={
                    "status": order.status.name,
                    "writer_id": order.assigned_writer_id,
                },
                after={
                    "status": OrderStatus.WRITER_ASSIGNED.name,
                    "writer_id": writer_id,
                    "released": [row.writer_id for row in displaced],
                    "reason": reason,
                },
            )

        log.info(
            "writer_assigned",
            order_id=order_id,
            writer_id=writer_id,
            previous_writer_id=order.assigned_writer_id,
            event_type=str(event_type),
        )
        return order.model_copy(
            update={
                "status": OrderStatus.WRITER_ASSIGNED,
                "assigned_writer_id": writer_id,
                "updated_at": now,
            }
        )

    async def _cas_interest(
        self,
        interest: WriterInterest,
        expected: tuple[InterestState, ...],
        new_state: InterestState,
        now,
        comment: str | None = None,
    ) -> None:
        updated = await self._stores.interest_store.update_state(
            interest.interest_id, expected, new_state, now.isoformat(), comment=comment
        )
        if not updated:
            raise ConflictError(
                f"interest of writer {interest.writer_id} on order {interest.order_id} "
                "changed concurrently; refresh and choose again"
            )

    async def _assignable_interest(
        self, order_id: str, writer_id: str
    ) -> WriterInterest:
        interest = await self._stores.interest_store.get_interest(order_id, writer_id)
        if interest is None or not interest.is_interested:
            state = interest.state if interest else "none"
            raise InvalidTransitionError(
                f"writer {writer_id} cannot be assigned from interest state '{state}'; "
                "requires interested",
                role=Role.ADMIN,
            )
        return interest

    async def _load_writer(self, writer_id: str, field: str = "writer_ids") -> User:
        writer = await self._users.get_user(writer_id)
        if writer is None:
            raise NotFoundError("writer", writer_id)
        if writer.role != Role.WRITER or not writer.is_active:
            raise ValidationError(
                f"user {writer_id} is not an active writer",
                details={"field": field, "writer_id": writer_id},
            )
        return writer

    @staticmethod
    def _require_assignee(order: Order) -> str:
        if order.assigned_writer_id is None:
            raise InvalidTransitionError(
                f"order {order.order_id} has no assigned writer",
                from_status=order.status,
            )
        return order.assigned_writer_id
