"""AssignFlow Core Store -- SQLite 持久化实现

提供工厂函数创建 Store 实例组：写连接只在 unit of work 内使用，
事务外的读取走只读快照连接（WAL 下只能看到已提交的数据）。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .audit_store import SqliteAuditStore
from .billing_store import SqlitePaymentStore, SqliteQuotationStore
from .interest_store import SqliteEvaluationStore, SqliteInterestStore
from .notification_store import SqliteNotificationStore
from .order_store import SqliteOrderStore
from .reminder_store import SqliteReminderStore
from .sqlite_init import init_db, init_reader, verify_wal_mode
from .submission_store import SqliteSubmissionStore
from .transaction import RoutedConnection, savepoint, unit_of_work
from .user_store import SqliteUserStore


class StoreGroup:
    """Store 实例组 -- 共享写连接、只读快照连接与写锁"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        reader: aiosqlite.Connection | None = None,
    ) -> None:
        self.conn = conn
        self.reader = reader or conn
        self._routed = RoutedConnection(conn, self.reader)
        routed = self._routed
        self.order_store = SqliteOrderStore(routed)
        self.interest_store = SqliteInterestStore(routed)
        self.evaluation_store = SqliteEvaluationStore(routed)
        self.quotation_store = SqliteQuotationStore(routed)
        self.payment_store = SqlitePaymentStore(routed)
        self.submission_store = SqliteSubmissionStore(routed)
        self.audit_store = SqliteAuditStore(routed)
        self.notification_store = SqliteNotificationStore(routed)
        self.user_store = SqliteUserStore(routed)
        self.reminder_store = SqliteReminderStore(routed)
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """开启一个 unit of work：成功提交，异常回滚"""
        async with unit_of_work(self.conn, self._write_lock) as conn:
            self._routed.owner = asyncio.current_task()
            try:
                yield conn
            finally:
                self._routed.owner = None

    async def close(self) -> None:
        if self.reader is not self.conn:
            await self.reader.close()
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    reader = await aiosqlite.connect(db_path)
    reader.row_factory = aiosqlite.Row
    await init_reader(reader)

    return StoreGroup(conn=conn, reader=reader)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteOrderStore",
    "SqliteInterestStore",
    "SqliteEvaluationStore",
    "SqliteQuotationStore",
    "SqlitePaymentStore",
    "SqliteSubmissionStore",
    "SqliteAuditStore",
    "SqliteNotificationStore",
    "SqliteUserStore",
    "SqliteReminderStore",
    "init_db",
    "init_reader",
    "RoutedConnection",
    "verify_wal_mode",
    "unit_of_work",
    "savepoint",
]
