"""WriterInterest / TaskEvaluation SQLite 实现

两张表只由招募引擎写入；状态更新均为 CAS，返回是否命中。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import EvaluationState, InterestState
from ..models.interest import TaskEvaluation, WriterInterest


class SqliteInterestStore:
    """WriterInterest 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_interest(self, interest: WriterInterest) -> None:
        """新增意向记录（(order_id, writer_id) 唯一）"""
        await self._conn.execute(
            """
            INSERT INTO writer_interests (interest_id, order_id, writer_id, state,
                                          comment, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                interest.interest_id,
                interest.order_id,
                interest.writer_id,
                interest.state.value,
                interest.comment,
                interest.created_at.isoformat(),
                interest.updated_at.isoformat(),
            ),
        )

    async def get_interest(
        self, order_id: str, writer_id: str
    ) -> WriterInterest | None:
        cursor = await self._conn.execute(
            "SELECT * FROM writer_interests WHERE order_id = ? AND writer_id = ?",
            (order_id, writer_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_interest(row)

    async def list_for_order(self, order_id: str) -> list[WriterInterest]:
        """查询订单的全部意向记录，按创建时间正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM writer_interests WHERE order_id = ? ORDER BY rowid ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_interest(row) for row in rows]

    async def list_for_writer(self, writer_id: str) -> list[WriterInterest]:
        cursor = await self._conn.execute(
            "SELECT * FROM writer_interests WHERE writer_id = ? ORDER BY rowid DESC",
            (writer_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_interest(row) for row in rows]

    async def list_assigned(self, order_id: str) -> list[WriterInterest]:
        """查询订单当前 assigned 记录（正常情况下至多一条）"""
        cursor = await self._conn.execute(
            "SELECT * FROM writer_interests WHERE order_id = ? AND state = ?",
            (order_id, InterestState.ASSIGNED.value),
        )
        rows = await cursor.fetchall()
        return [self._row_to_interest(row) for row in rows]

    async def update_state(
        self,
        interest_id: str,
        expected_states: tuple[InterestState, ...],
        new_state: InterestState,
        updated_at: str,
        comment: str | None = None,
    ) -> bool:
        """CAS 更新意向状态

        Args:
            interest_id: 记录 ID
            expected_states: 允许的当前状态
            new_state: 目标状态
            updated_at: 更新时间
            comment: 非 None 时同时覆盖备注

        Returns:
            True 如果命中一行
        """
        placeholders = ", ".join("?" for _ in expected_states)
        params: list = [new_state.value, updated_at]
        set_comment = ""
        if comment is not None:
            set_comment = ", comment = ?"
            params.append(comment)
        params.append(interest_id)
        params.extend(s.value for s in expected_states)

        cursor = await self._conn.execute(
            f"""
            UPDATE writer_interests SET state = ?, updated_at = ?{set_comment}
            WHERE interest_id = ? AND state IN ({placeholders})
            """,
            params,
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_interest(row: aiosqlite.Row) -> WriterInterest:
        return WriterInterest(
            interest_id=row["interest_id"],
            order_id=row["order_id"],
            writer_id=row["writer_id"],
            state=InterestState(row["state"]),
            comment=row["comment"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SqliteEvaluationStore:
    """TaskEvaluation 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def reset_pending(self, evaluation: TaskEvaluation) -> None:
        """新建或重置为 pending（写手被指派时调用）"""
        await self._conn.execute(
            """
            INSERT INTO task_evaluations (evaluation_id, order_id, writer_id, state,
                                          comment, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(order_id, writer_id) DO UPDATE SET
                state = excluded.state,
                comment = '',
                updated_at = excluded.updated_at
            """,
            (
                evaluation.evaluation_id,
                evaluation.order_id,
                evaluation.writer_id,
                EvaluationState.PENDING.value,
                evaluation.comment,
                evaluation.created_at.isoformat(),
                evaluation.updated_at.isoformat(),
            ),
        )

    async def release(self, order_id: str, writer_id: str, updated_at: str) -> None:
        """写手被释放 / 撤回后评估记录置为 released"""
        await self._conn.execute(
            """
            UPDATE task_evaluations SET state = ?, updated_at = ?
            WHERE order_id = ? AND writer_id = ?
            """,
            (EvaluationState.RELEASED.value, updated_at, order_id, writer_id),
        )

    async def update_state(
        self,
        order_id: str,
        writer_id: str,
        expected_state: EvaluationState,
        new_state: EvaluationState,
        comment: str,
        updated_at: str,
    ) -> bool:
        """CAS 更新评估状态"""
        cursor = await self._conn.execute(
            """
            UPDATE task_evaluations SET state = ?, comment = ?, updated_at = ?
            WHERE order_id = ? AND writer_id = ? AND state = ?
            """,
            (
                new_state.value,
                comment,
                updated_at,
                order_id,
                writer_id,
                expected_state.value,
            ),
        )
        return cursor.rowcount == 1

    async def get_evaluation(
        self, order_id: str, writer_id: str
    ) -> TaskEvaluation | None:
        cursor = await self._conn.execute(
            "SELECT * FROM task_evaluations WHERE order_id = ? AND writer_id = ?",
            (order_id, writer_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_evaluation(row)

    async def list_for_order(self, order_id: str) -> list[TaskEvaluation]:
        cursor = await self._conn.execute(
            "SELECT * FROM task_evaluations WHERE order_id = ? ORDER BY rowid ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_evaluation(row) for row in rows]

    @staticmethod
    def _row_to_evaluation(row: aiosqlite.Row) -> TaskEvaluation:
        return TaskEvaluation(
            evaluation_id=row["evaluation_id"],
            order_id=row["order_id"],
            writer_id=row["writer_id"],
            state=EvaluationState(row["state"]),
            comment=row["comment"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
