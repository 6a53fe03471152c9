"""OrderStore SQLite 实现

状态、指派写手、工作码的写入均为比较并交换（compare-and-set）：
返回 False 表示读取已过期，由调用方转为 ConflictError。
此处不提交事务，事务由 StoreGroup.transaction() 管理。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import OrderStatus
from ..models.order import Order


class SqliteOrderStore:
    """OrderStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_order(self, order: Order) -> None:
        """创建订单记录"""
        await self._conn.execute(
            """
            INSERT INTO orders (order_id, client_id, topic, subject, service, urgency,
                                description, query_code, work_code, status,
                                assigned_writer_id, basic_price, discount, total_price,
                                deadline_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                order.order_id,
                order.client_id,
                order.topic,
                order.subject,
                order.service,
                order.urgency,
                order.description,
                order.query_code,
                order.work_code,
                int(order.status),
                order.assigned_writer_id,
                order.basic_price,
                order.discount,
                order.total_price,
                order.deadline_at.isoformat() if order.deadline_at else None,
                order.created_at.isoformat(),
                order.updated_at.isoformat(),
            ),
        )

    async def get_order(self, order_id: str) -> Order | None:
        """根据 order_id 查询订单"""
        cursor = await self._conn.execute(
            "SELECT * FROM orders WHERE order_id = ?",
            (order_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_order(row)

    async def list_orders(
        self,
        status: OrderStatus | None = None,
        client_id: str | None = None,
        writer_id: str | None = None,
    ) -> list[Order]:
        """查询订单列表，支持按状态 / 客户 / 写手筛选，按 created_at 倒序"""
        clauses: list[str] = []
        params: list = []
        if status is not None:
            clauses.append("status = ?")
            params.append(int(status))
        if client_id is not None:
            clauses.append("client_id = ?")
            params.append(client_id)
        if writer_id is not None:
            clauses.append("assigned_writer_id = ?")
            params.append(writer_id)

        sql = "SELECT * FROM orders"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_order(row) for row in rows]

    async def list_orders_in_states(
        self, statuses: frozenset[OrderStatus] | set[OrderStatus]
    ) -> list[Order]:
        """查询处于给定状态集合内的订单"""
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        cursor = await self._conn.execute(
            f"SELECT * FROM orders WHERE status IN ({placeholders}) ORDER BY created_at",
            [int(s) for s in statuses],
        )
        rows = await cursor.fetchall()
        return [self._row_to_order(row) for row in rows]

    async def update_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        updated_at: str,
    ) -> bool:
        """CAS 更新状态：(order_id, expected_status) -> new_status"""
        cursor = await self._conn.execute(
            """
            UPDATE orders SET status = ?, updated_at = ?
            WHERE order_id = ? AND status = ?
            """,
            (int(new_status), updated_at, order_id, int(expected_status)),
        )
        return cursor.rowcount == 1

    async def set_assignment(
        self,
        order_id: str,
        expected_status: OrderStatus,
        expected_writer_id: str | None,
        writer_id: str | None,
        new_status: OrderStatus,
        updated_at: str,
    ) -> bool:
        """CAS 更新指派写手与状态

        同时比较状态与当前写手，任一不符即视为并发冲突。
        """
        cursor = await self._conn.execute(
            """
            UPDATE orders SET assigned_writer_id = ?, status = ?, updated_at = ?
            WHERE order_id = ? AND status = ? AND assigned_writer_id IS ?
            """,
            (
                writer_id,
                int(new_status),
                updated_at,
                order_id,
                int(expected_status),
                expected_writer_id,
            ),
        )
        return cursor.rowcount == 1

    async def stamp_work_code(
        self,
        order_id: str,
        expected_status: OrderStatus,
        work_code: str,
        updated_at: str,
    ) -> bool:
        """写入工作码并置为 CONFIRMED（同一条 UPDATE，仅当工作码为空）"""
        cursor = await self._conn.execute(
            """
            UPDATE orders SET work_code = ?, status = ?, updated_at = ?
            WHERE order_id = ? AND status = ? AND work_code IS NULL
            """,
            (
                work_code,
                int(OrderStatus.CONFIRMED),
                updated_at,
                order_id,
                int(expected_status),
            ),
        )
        return cursor.rowcount == 1

    async def update_pricing(
        self,
        order_id: str,
        basic_price: float,
        discount: float,
        total_price: float,
        updated_at: str,
    ) -> None:
        """将报价镜像到订单价格字段"""
        await self._conn.execute(
            """
            UPDATE orders SET basic_price = ?, discount = ?, total_price = ?, updated_at = ?
            WHERE order_id = ?
            """,
            (basic_price, discount, total_price, updated_at, order_id),
        )

    @staticmethod
    def _row_to_order(row: aiosqlite.Row) -> Order:
        """将数据库行转换为 Order 模型"""
        return Order(
            order_id=row["order_id"],
            client_id=row["client_id"],
            topic=row["topic"],
            subject=row["subject"],
            service=row["service"],
            urgency=row["urgency"],
            description=row["description"],
            query_code=row["query_code"],
            work_code=row["work_code"],
            status=OrderStatus(row["status"]),
            assigned_writer_id=row["assigned_writer_id"],
            basic_price=row["basic_price"],
            discount=row["discount"],
            total_price=row["total_price"],
            deadline_at=(
                datetime.fromisoformat(row["deadline_at"]) if row["deadline_at"] else None
            ),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
