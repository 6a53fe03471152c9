"""AuditStore SQLite 实现

审计表 append-only：只允许插入，不允许更新或删除。
order_seq 同一订单内严格单调递增。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.audit import AuditLogEntry
from ..models.enums import AuditEventType


class SqliteAuditStore:
    """AuditStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_entry(self, entry: AuditLogEntry) -> None:
        """追加审计记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO audit_log (entry_id, order_id, order_seq, ts, actor_id, actor_role,
                                   event_type, resource_type, resource_id,
                                   before_ctx, after_ctx, idempotency_key)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.order_id,
                entry.order_seq,
                entry.ts.isoformat(),
                entry.actor_id,
                entry.actor_role,
                entry.event_type.value,
                entry.resource_type,
                entry.resource_id,
                json.dumps(entry.before, ensure_ascii=False, default=str),
                json.dumps(entry.after, ensure_ascii=False, default=str),
                entry.idempotency_key,
            ),
        )

    async def list_for_order(self, order_id: str) -> list[AuditLogEntry]:
        """查询订单全部审计记录，按 order_seq 正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM audit_log WHERE order_id = ? ORDER BY order_seq ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def get_next_order_seq(self, order_id: str) -> int:
        """获取订单的下一个 order_seq（MAX+1）

        在事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(order_seq), 0) FROM audit_log WHERE order_id = ?",
            (order_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    async def check_idempotency_key(self, key: str) -> str | None:
        """检查幂等键是否已存在

        Returns:
            关联的 order_id 如果存在，否则 None
        """
        cursor = await self._conn.execute(
            "SELECT order_id FROM audit_log WHERE idempotency_key = ? LIMIT 1",
            (key,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> AuditLogEntry:
        """将数据库行转换为 AuditLogEntry 模型"""
        return AuditLogEntry(
            entry_id=row["entry_id"],
            order_id=row["order_id"],
            order_seq=row["order_seq"],
            ts=datetime.fromisoformat(row["ts"]),
            actor_id=row["actor_id"],
            actor_role=row["actor_role"],
            event_type=AuditEventType(row["event_type"]),
            resource_type=row["resource_type"],
            resource_id=row["resource_id"],
            before=json.loads(row["before_ctx"]) if row["before_ctx"] else {},
            after=json.loads(row["after_ctx"]) if row["after_ctx"] else {},
            idempotency_key=row["idempotency_key"],
        )
