"""状态注册表与流转守卫

ROLE_TRANSITIONS 是唯一的权威流转表，这里只负责判定与生成拒绝原因，
所有拒绝都说明需要的角色 / 状态，供 UI 重新渲染可用操作。
"""

from ..errors import InvalidTransitionError, OrderClosedError, UnauthorizedError
from ..models.enums import (
    CLOSED_STATES,
    GATED_TARGETS,
    OrderStatus,
    Role,
    allowed_targets,
    can_transition,
)
from ..models.order import Order
from ..models.user import User


def roles_allowed(from_status: OrderStatus, to_status: OrderStatus) -> list[Role]:
    """能完成 from -> to 流转的角色"""
    return [role for role in Role if can_transition(role, from_status, to_status)]


def sources_for(to_status: OrderStatus) -> list[OrderStatus]:
    """任一角色可到达 to_status 的来源状态"""
    return [
        status
        for status in OrderStatus
        if any(can_transition(role, status, to_status) for role in Role)
    ]


def explain_denial(
    role: Role, from_status: OrderStatus, to_status: OrderStatus
) -> str:
    """生成拒绝原因：说明需要的角色或来源状态"""
    message = (
        f"role '{role}' cannot move order from {from_status.name} to {to_status.name}"
    )
    permitted = roles_allowed(from_status, to_status)
    if permitted:
        message += f"; requires role {' or '.join(str(r) for r in permitted)}"
    else:
        sources = sources_for(to_status)
        if sources:
            message += (
                f"; {to_status.name} is only reachable from "
                f"{', '.join(s.name for s in sources)}"
            )
        else:
            message += f"; {to_status.name} is not reachable"

    allowed = allowed_targets(role, from_status)
    if allowed:
        message += (
            f" (allowed for {role} here: {', '.join(s.name for s in allowed)})"
        )
    return message


def ensure_transition(
    role: Role, from_status: OrderStatus, to_status: OrderStatus
) -> None:
    """校验流转合法，否则抛出 InvalidTransitionError"""
    if can_transition(role, from_status, to_status):
        return
    raise InvalidTransitionError(
        explain_denial(role, from_status, to_status),
        role=role,
        from_status=from_status,
        to_status=to_status,
        allowed=[s.name for s in allowed_targets(role, from_status)],
    )


def ensure_not_gated(target: OrderStatus) -> None:
    """通用流转入口拒绝闸门目标"""
    operation = GATED_TARGETS.get(target)
    if operation is not None:
        raise InvalidTransitionError(
            f"{target.name} can only be reached through {operation}",
            to_status=target,
            code="GATED_TRANSITION",
        )


def ensure_open(order: Order) -> None:
    """订单已关闭（交付 / 完成 / 取消 / 拒绝）时拒绝招募与 QC 操作"""
    if order.status in CLOSED_STATES:
        raise OrderClosedError(order.order_id, order.status)


def ensure_role(actor: User, operation: str, *roles: Role) -> None:
    """校验操作者角色"""
    if actor.role in roles:
        return
    raise UnauthorizedError(
        f"{operation} requires role {' or '.join(str(r) for r in roles)}; "
        f"actor {actor.user_id} has role {actor.role}",
        role=actor.role,
    )
