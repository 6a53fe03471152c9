"""AssignFlow Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .audit import AuditLogEntry
from .billing import Payment, Quotation
from .enums import (
    CLOSED_STATES,
    CONFIRMED_STATES,
    GATED_TARGETS,
    ROLE_TRANSITIONS,
    TERMINAL_STATES,
    WORKING_STATES,
    AuditEventType,
    EvaluationState,
    InterestState,
    NotificationLevel,
    OrderStatus,
    PaymentState,
    Role,
    SubmissionState,
    allowed_targets,
    can_transition,
)
from .interest import InviteResult, TaskEvaluation, WriterInterest
from .notification import Notification, NotificationMessage
from .order import ChatAccess, Order
from .submission import Submission
from .user import User

__all__ = [
    # 枚举
    "OrderStatus",
    "Role",
    "InterestState",
    "EvaluationState",
    "PaymentState",
    "SubmissionState",
    "NotificationLevel",
    "AuditEventType",
    # 状态机
    "ROLE_TRANSITIONS",
    "TERMINAL_STATES",
    "CLOSED_STATES",
    "CONFIRMED_STATES",
    "WORKING_STATES",
    "GATED_TARGETS",
    "can_transition",
    "allowed_targets",
    # Order
    "Order",
    "ChatAccess",
    # 招募
    "WriterInterest",
    "TaskEvaluation",
    "InviteResult",
    # 报价 / 支付
    "Quotation",
    "Payment",
    # QC
    "Submission",
    # 审计 / 通知
    "AuditLogEntry",
    "Notification",
    "NotificationMessage",
    # 用户
    "User",
]
