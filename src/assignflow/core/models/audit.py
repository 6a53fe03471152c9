"""AuditLogEntry Domain Model

审计表 append-only，不允许更新或删除。
entry_id 使用 ULID 格式，时间有序；order_seq 同一订单内严格单调递增。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import AuditEventType


class AuditLogEntry(BaseModel):
    """审计记录"""

    entry_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    order_id: str = Field(description="关联订单 ID")
    order_seq: int = Field(description="订单内序号，严格单调递增")
    ts: datetime = Field(description="记录时间")
    actor_id: str = Field(description="操作者 ID")
    actor_role: str = Field(description="操作者角色")
    event_type: AuditEventType = Field(description="事件类型")
    resource_type: str = Field(description="资源类型")
    resource_id: str = Field(description="资源 ID")
    before: dict[str, Any] = Field(default_factory=dict, description="变更前上下文")
    after: dict[str, Any] = Field(default_factory=dict, description="变更后上下文")
    idempotency_key: str | None = Field(default=None, description="幂等键")
