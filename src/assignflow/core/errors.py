"""工作流异常体系

NotFound / InvalidTransition / Conflict / ValidationError 中止当前事务并返回给调用方；
DownstreamNonFatal 仅用于记录下游（通知、投递、审计）失败，从不向调用方抛出。
"""

from typing import Any


class WorkflowError(Exception):
    """工作流基础异常"""

    code: str = "WORKFLOW_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            message: 面向调用方的错误说明（需说明缺少的角色/状态）
            code: 机器可读错误码，缺省使用类级别 code
            details: 附加结构化上下文
        """
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = details or {}


class NotFoundError(WorkflowError):
    """订单 / 支付 / 写手 / 提交记录不存在"""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            f"{resource} with id {resource_id} does not exist",
            code=f"{resource.upper()}_NOT_FOUND",
            details={"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class InvalidTransitionError(WorkflowError):
    """角色 / 状态不匹配

    携带 role、from_status、to_status 与当前允许的目标集合，供 UI 重新渲染可用操作。
    """

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        role: str | None = None,
        from_status: Any = None,
        to_status: Any = None,
        allowed: list[str] | None = None,
        code: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if role is not None:
            details["role"] = str(role)
        if from_status is not None:
            details["from_status"] = _status_name(from_status)
        if to_status is not None:
            details["to_status"] = _status_name(to_status)
        if allowed is not None:
            details["allowed"] = allowed
        super().__init__(message, code=code, details=details)
        self.role = role
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed or []


class UnauthorizedError(InvalidTransitionError):
    """操作者角色不符、非资源所有者或账号已停用"""

    code = "UNAUTHORIZED_ACTOR"


class OrderClosedError(InvalidTransitionError):
    """订单已交付/完成/取消，拒绝招募与 QC 流转"""

    code = "ORDER_CLOSED"

    def __init__(self, order_id: str, status: Any) -> None:
        super().__init__(
            f"order already closed (order {order_id} is {_status_name(status)})",
            from_status=status,
        )
        self.details["order_id"] = order_id


class ConflictError(WorkflowError):
    """比较并交换失败（读取过期）或并发分配竞争"""

    code = "CONFLICT"


class DuplicateInterestError(ConflictError):
    """写手重复表达兴趣"""

    code = "DUPLICATE_INTEREST"


class ValidationError(WorkflowError):
    """必填字段缺失、金额或截止时间不合法"""

    code = "VALIDATION_ERROR"


class DownstreamNonFatal(WorkflowError):
    """下游协作方失败（通知持久化 / 外部投递 / 审计写入）

    只被记录，不向调用方传播。
    """

    code = "DOWNSTREAM_NON_FATAL"

    def __init__(self, stage: str, original_error: Exception) -> None:
        """
        Args:
            stage: 失败的下游环节
            original_error: 原始异常
        """
        super().__init__(
            f"{stage} failed: {original_error}",
            details={"stage": stage, "error_type": type(original_error).__name__},
        )
        self.stage = stage
        self.original_error = original_error


def _status_name(status: Any) -> str:
    """状态值转为可读名称（IntEnum 取 name）"""
    return getattr(status, "name", str(status))
