"""响应序列化 -- 领域模型转 JSON 友好的 dict

OrderStatus 同时输出名称与持久化状态码。
"""

from typing import Any

from assignflow.core.errors import ValidationError
from assignflow.core.models import Order, OrderStatus
from pydantic import BaseModel


def order_view(order: Order) -> dict[str, Any]:
    data = order.model_dump(mode="json")
    data["status"] = order.status.name
    data["status_code"] = int(order.status)
    return data


def model_view(model: BaseModel | None) -> dict[str, Any] | None:
    if model is None:
        return None
    return model.model_dump(mode="json")


def parse_status(value: str | int) -> OrderStatus:
    """接受状态名（不区分大小写）或整数状态码

    Raises:
        ValidationError: 未知状态
    """
    text = str(value).strip()
    if text.isdigit():
        try:
            return OrderStatus(int(text))
        except ValueError:
            pass
    else:
        member = OrderStatus.__members__.get(text.upper())
        if member is not None:
            return member
    raise ValidationError(
        f"unknown order status '{value}'",
        details={
            "field": "status",
            "allowed": [s.name for s in OrderStatus],
        },
    )
