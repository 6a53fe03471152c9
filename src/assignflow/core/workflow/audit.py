"""审计记录器

在调用方的 unit of work 内追加一条审计记录，包裹在 SAVEPOINT 中：
写入失败只回滚到保存点并记录日志，不会让父操作失败。
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from ulid import ULID

from ..errors import DownstreamNonFatal
from ..models.audit import AuditLogEntry
from ..models.enums import AuditEventType
from ..store import StoreGroup, savepoint

log = structlog.get_logger()

SYSTEM_ACTOR_ID = "system"
SYSTEM_ACTOR_ROLE = "system"


class AuditRecorder:
    """审计记录器 -- 只插入，不更新"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def record(
        self,
        *,
        order_id: str,
        actor_id: str,
        actor_role: str,
        event_type: AuditEventType,
        resource_type: str,
        resource_id: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> AuditLogEntry | None:
        """追加审计记录（必须在 StoreGroup.transaction() 内调用）

        Returns:
            写入的记录；失败时返回 None
        """
        try:
            async with savepoint(self._stores.conn, "audit_entry"):
                order_seq = await self._stores.audit_store.get_next_order_seq(order_id)
                entry = AuditLogEntry(
                    entry_id=str(ULID()),
                    order_id=order_id,
                    order_seq=order_seq,
                    ts=datetime.now(UTC),
                    actor_id=actor_id,
                    actor_role=str(actor_role),
                    event_type=event_type,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    before=before or {},
                    after=after or {},
                    idempotency_key=idempotency_key,
                )
                await self._stores.audit_store.append_entry(entry)
        except Exception as e:
            failure = DownstreamNonFatal("audit_record", e)
            log.warning(
                "audit_record_failed",
                order_id=order_id,
                event_type=str(event_type),
                error=failure.message,
                error_type=failure.details["error_type"],
            )
            return None
        return entry
