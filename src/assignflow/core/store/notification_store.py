"""NotificationStore SQLite 实现 -- 通知行是 "用户是否被告知" 的事实来源"""

from datetime import datetime

import aiosqlite

from ..models.enums import NotificationLevel
from ..models.notification import Notification


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_notification(self, notification: Notification) -> None:
        await self._conn.execute(
            """
            INSERT INTO notifications (notification_id, user_id, order_id, level, title,
                                       message, link_url, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.notification_id,
                notification.user_id,
                notification.order_id,
                notification.level.value,
                notification.title,
                notification.message,
                notification.link_url,
                int(notification.is_read),
                notification.created_at.isoformat(),
            ),
        )

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        """查询用户通知，按时间倒序"""
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        params: list = [user_id]
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY rowid DESC LIMIT ?"
        params.append(limit)
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def list_for_order(self, order_id: str) -> list[Notification]:
        cursor = await self._conn.execute(
            "SELECT * FROM notifications WHERE order_id = ? ORDER BY rowid ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def unread_count(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """标记单条已读（只能标记自己的通知）"""
        cursor = await self._conn.execute(
            "UPDATE notifications SET is_read = 1 WHERE notification_id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return cursor.rowcount == 1

    async def mark_all_read(self, user_id: str) -> int:
        """标记全部已读，返回受影响条数"""
        cursor = await self._conn.execute(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
            (user_id,),
        )
        return cursor.rowcount

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        return Notification(
            notification_id=row["notification_id"],
            user_id=row["user_id"],
            order_id=row["order_id"],
            level=NotificationLevel(row["level"]),
            title=row["title"],
            message=row["message"],
            link_url=row["link_url"],
            is_read=bool(row["is_read"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
