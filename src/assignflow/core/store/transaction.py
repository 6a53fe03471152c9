"""单元事务封装

一个 unit of work = 一次 StoreGroup.transaction() 块：
在写锁内 BEGIN IMMEDIATE，成功提交，任何异常回滚并重新抛出。
savepoint() 用于事务内可独立回滚的尽力而为写入（如审计）。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite


@asynccontextmanager
async def unit_of_work(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """在同一连接上串行执行一个原子事务

    Args:
        conn: 数据库连接（所有 Store 共享）
        lock: 写锁，串行化所有事务

    Raises:
        Exception: 事务体内的任何异常，回滚后原样抛出
    """
    async with lock:
        if not conn.in_transaction:
            await conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            # 原子提交
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise


@asynccontextmanager
async def savepoint(conn: aiosqlite.Connection, name: str) -> AsyncIterator[None]:
    """事务内保存点：块内异常只回滚到保存点，外层事务不受影响

    必须在 unit_of_work 内使用。异常仍会抛出，由调用方决定是否吞掉。
    """
    await conn.execute(f"SAVEPOINT {name}")
    try:
        yield
    except BaseException:
        await conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
        await conn.execute(f"RELEASE SAVEPOINT {name}")
        raise
    await conn.execute(f"RELEASE SAVEPOINT {name}")


class RoutedConnection:
    """Store 使用的连接路由

    持有 unit of work 的 task 走写连接（可见本事务未提交的写入），
    其他 task 走只读快照连接，只能读到已提交状态。
    """

    def __init__(
        self,
        writer: aiosqlite.Connection,
        reader: aiosqlite.Connection,
    ) -> None:
        self._writer = writer
        self._reader = reader
        self.owner: asyncio.Task | None = None

    def current(self) -> aiosqlite.Connection:
        if self.owner is not None and asyncio.current_task() is self.owner:
            return self._writer
        return self._reader

    async def execute(self, sql: str, parameters=None) -> aiosqlite.Cursor:
        return await self.current().execute(sql, parameters)
