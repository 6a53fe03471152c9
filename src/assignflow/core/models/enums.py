"""枚举定义

包含 OrderStatus 状态机（持久化整数码）、Role、写手兴趣/评估/支付/提交状态、
审计事件类型，以及按角色划分的 ROLE_TRANSITIONS 合法流转表。
"""

from enum import IntEnum, StrEnum


class OrderStatus(IntEnum):
    """订单状态机 -- 整数值即持久化的状态码"""

    PENDING_QUERY = 26
    QUOTATION_SENT = 27
    ACCEPTED = 28
    AWAITING_VERIFICATION = 29
    CONFIRMED = 30
    WRITER_ASSIGNED = 31
    IN_PROGRESS = 32
    PENDING_QC = 33
    APPROVED = 34
    COMPLETED = 35
    REVISION_REQUIRED = 36
    DELIVERED = 37
    QUERY_REJECTED = 38
    WRITER_REJECTED_TASK = 40
    CANCELLED = 45
    PARTIALLY_PAID = 47

    # 撤销分配后回到的 "等待分配" 与 CONFIRMED 同码
    AWAITING_ASSIGNMENT = 30


class Role(StrEnum):
    """操作者角色"""

    CLIENT = "client"
    BDE = "bde"
    WRITER = "writer"
    ADMIN = "admin"


class InterestState(StrEnum):
    """写手兴趣状态（每个 order × writer 一行）"""

    INVITED = "invited"
    INTERESTED = "interested"
    # 历史数据中的 "accepted" 与 interested 同义，仅读取时兼容
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    REVOKED = "revoked"
    RELEASED = "released"


class EvaluationState(StrEnum):
    """任务评估状态"""

    PENDING = "pending"
    DOABLE = "doable"
    NOT_DOABLE = "not_doable"
    RELEASED = "released"


class PaymentState(StrEnum):
    """支付核验状态"""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SubmissionState(StrEnum):
    """QC 提交状态"""

    PENDING_QC = "pending_qc"
    APPROVED = "approved"
    REVISION_REQUIRED = "revision_required"
    COMPLETED = "completed"


class NotificationLevel(StrEnum):
    """通知级别"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditEventType(StrEnum):
    """审计事件类型"""

    ORDER_CREATED = "ORDER_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    QUOTATION_SAVED = "QUOTATION_SAVED"
    QUOTATION_ACCEPTED = "QUOTATION_ACCEPTED"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    WRITERS_INVITED = "WRITERS_INVITED"
    INTEREST_SHOWN = "INTEREST_SHOWN"
    INVITATION_DECLINED = "INVITATION_DECLINED"
    WRITER_ASSIGNED = "WRITER_ASSIGNED"
    WRITER_REVOKED = "WRITER_REVOKED"
    WRITER_REASSIGNED = "WRITER_REASSIGNED"
    TASK_EVALUATED = "TASK_EVALUATED"
    WORK_SUBMITTED = "WORK_SUBMITTED"
    SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    DEADLINE_REMINDER_SENT = "DEADLINE_REMINDER_SENT"


# 按角色划分的合法流转表：role -> 当前状态 -> 允许的目标状态
ROLE_TRANSITIONS: dict[Role, dict[OrderStatus, frozenset[OrderStatus]]] = {
    Role.CLIENT: {
        OrderStatus.PENDING_QUERY: frozenset({OrderStatus.CANCELLED}),
        OrderStatus.QUOTATION_SENT: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
        OrderStatus.ACCEPTED: frozenset({OrderStatus.AWAITING_VERIFICATION, OrderStatus.CANCELLED}),
        OrderStatus.PARTIALLY_PAID: frozenset({OrderStatus.AWAITING_VERIFICATION}),
        # 支付被拒后客户可重新提交凭证
        OrderStatus.AWAITING_VERIFICATION: frozenset({OrderStatus.AWAITING_VERIFICATION}),
    },
    Role.BDE: {
        OrderStatus.PENDING_QUERY: frozenset({OrderStatus.QUOTATION_SENT, OrderStatus.QUERY_REJECTED}),
        OrderStatus.QUOTATION_SENT: frozenset(
            {OrderStatus.QUOTATION_SENT, OrderStatus.PENDING_QUERY, OrderStatus.QUERY_REJECTED}
        ),
    },
    Role.WRITER: {
        OrderStatus.WRITER_ASSIGNED: frozenset(
            {OrderStatus.IN_PROGRESS, OrderStatus.PENDING_QC, OrderStatus.WRITER_REJECTED_TASK}
        ),
        OrderStatus.IN_PROGRESS: frozenset({OrderStatus.PENDING_QC, OrderStatus.WRITER_REJECTED_TASK}),
        OrderStatus.REVISION_REQUIRED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.PENDING_QC}),
    },
    Role.ADMIN: {
        OrderStatus.PENDING_QUERY: frozenset(
            {OrderStatus.QUOTATION_SENT, OrderStatus.QUERY_REJECTED, OrderStatus.CANCELLED}
        ),
        OrderStatus.QUOTATION_SENT: frozenset(
            {
                OrderStatus.QUOTATION_SENT,
                OrderStatus.PENDING_QUERY,
                OrderStatus.ACCEPTED,
                OrderStatus.QUERY_REJECTED,
                OrderStatus.CANCELLED,
            }
        ),
        # 管理员可在客户接受后重新报价
        OrderStatus.ACCEPTED: frozenset({OrderStatus.QUOTATION_SENT, OrderStatus.CANCELLED}),
        OrderStatus.AWAITING_VERIFICATION: frozenset(
            {OrderStatus.CONFIRMED, OrderStatus.PARTIALLY_PAID, OrderStatus.CANCELLED}
        ),
        OrderStatus.PARTIALLY_PAID: frozenset({OrderStatus.CANCELLED}),
        OrderStatus.CONFIRMED: frozenset({OrderStatus.WRITER_ASSIGNED, OrderStatus.CANCELLED}),
        # WRITER_ASSIGNED -> WRITER_ASSIGNED 即改派
        OrderStatus.WRITER_ASSIGNED: frozenset({OrderStatus.WRITER_ASSIGNED, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.IN_PROGRESS: frozenset({OrderStatus.WRITER_ASSIGNED, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
        OrderStatus.WRITER_REJECTED_TASK: frozenset(
            {OrderStatus.WRITER_ASSIGNED, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
        ),
        OrderStatus.PENDING_QC: frozenset({OrderStatus.APPROVED, OrderStatus.REVISION_REQUIRED, OrderStatus.CANCELLED}),
        # 返修中写手放弃：撤回或改派，不必取消整单
        OrderStatus.REVISION_REQUIRED: frozenset(
            {OrderStatus.WRITER_ASSIGNED, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
        ),
        OrderStatus.APPROVED: frozenset({OrderStatus.DELIVERED}),
        OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED}),
    },
}


# 终态：不再有任何流转
TERMINAL_STATES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.QUERY_REJECTED, OrderStatus.CANCELLED}
)

# 已关闭：拒绝一切招募与 QC 流转
CLOSED_STATES: frozenset[OrderStatus] = TERMINAL_STATES | {OrderStatus.DELIVERED}

# 已确认（工作码已生成）之后的状态
CONFIRMED_STATES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.CONFIRMED,
        OrderStatus.WRITER_ASSIGNED,
        OrderStatus.IN_PROGRESS,
        OrderStatus.WRITER_REJECTED_TASK,
        OrderStatus.PENDING_QC,
        OrderStatus.REVISION_REQUIRED,
        OrderStatus.APPROVED,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
    }
)

# 有写手在岗的状态
WORKING_STATES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.WRITER_ASSIGNED, OrderStatus.IN_PROGRESS, OrderStatus.REVISION_REQUIRED}
)

# 闸门目标：只能经由对应操作到达，通用 transition_status 拒绝
GATED_TARGETS: dict[OrderStatus, str] = {
    OrderStatus.QUOTATION_SENT: "create_or_update_quotation",
    OrderStatus.ACCEPTED: "accept_quotation",
    OrderStatus.AWAITING_VERIFICATION: "submit_payment",
    OrderStatus.PARTIALLY_PAID: "verify_payment",
    OrderStatus.CONFIRMED: "verify_payment / revoke",
    OrderStatus.WRITER_ASSIGNED: "assign / reassign",
    OrderStatus.WRITER_REJECTED_TASK: "evaluate_task",
    OrderStatus.PENDING_QC: "submit_work",
    OrderStatus.APPROVED: "approve_submission",
    OrderStatus.REVISION_REQUIRED: "request_revision",
    OrderStatus.DELIVERED: "deliver_order",
    OrderStatus.COMPLETED: "complete_order",
}


def can_transition(
    role: Role, from_status: OrderStatus, to_status: OrderStatus
) -> bool:
    """验证角色在当前状态下能否流转到目标状态

    Args:
        role: 操作者角色
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = ROLE_TRANSITIONS.get(role, {}).get(from_status, frozenset())
    return to_status in allowed


def allowed_targets(role: Role, status: OrderStatus) -> list[OrderStatus]:
    """列出角色在当前状态下的合法目标状态（按状态码排序）"""
    return sorted(ROLE_TRANSITIONS.get(role, {}).get(status, frozenset()))
