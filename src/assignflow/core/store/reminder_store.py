"""截止提醒去重记录"""

import aiosqlite


class SqliteReminderStore:
    """deadline_reminders 表：(order_id, writer_id, tier_hours) 唯一"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def record_sent(
        self, order_id: str, writer_id: str, tier_hours: int, sent_at: str
    ) -> bool:
        """登记一次提醒；已登记过返回 False"""
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO deadline_reminders (order_id, writer_id, tier_hours, sent_at)
            VALUES (?, ?, ?, ?)
            """,
            (order_id, writer_id, tier_hours, sent_at),
        )
        return cursor.rowcount == 1

    async def list_sent_tiers(self, order_id: str, writer_id: str) -> set[int]:
        cursor = await self._conn.execute(
            "SELECT tier_hours FROM deadline_reminders WHERE order_id = ? AND writer_id = ?",
            (order_id, writer_id),
        )
        rows = await cursor.fetchall()
        return {row[0] for row in rows}
