"""SubmissionStore SQLite 实现

"最新" 提交按插入顺序（rowid）判定。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import SubmissionState
from ..models.submission import Submission


class SqliteSubmissionStore:
    """SubmissionStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_submission(self, submission: Submission) -> None:
        await self._conn.execute(
            """
            INSERT INTO submissions (submission_id, order_id, writer_id, file_url, notes,
                                     feedback, state, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                submission.submission_id,
                submission.order_id,
                submission.writer_id,
                submission.file_url,
                submission.notes,
                submission.feedback,
                submission.state.value,
                submission.created_at.isoformat(),
                submission.updated_at.isoformat(),
            ),
        )

    async def get_submission(self, submission_id: str) -> Submission | None:
        cursor = await self._conn.execute(
            "SELECT * FROM submissions WHERE submission_id = ?",
            (submission_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    async def get_latest_for_order(self, order_id: str) -> Submission | None:
        """订单最新一条提交"""
        cursor = await self._conn.execute(
            "SELECT * FROM submissions WHERE order_id = ? ORDER BY rowid DESC LIMIT 1",
            (order_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    async def list_for_order(self, order_id: str) -> list[Submission]:
        """订单全部提交，按提交顺序正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM submissions WHERE order_id = ? ORDER BY rowid ASC",
            (order_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_submission(row) for row in rows]

    async def update_state(
        self,
        submission_id: str,
        expected_state: SubmissionState,
        new_state: SubmissionState,
        updated_at: str,
        feedback: str | None = None,
    ) -> bool:
        """CAS 更新提交状态，feedback 非 None 时一并写入"""
        if feedback is None:
            cursor = await self._conn.execute(
                """
                UPDATE submissions SET state = ?, updated_at = ?
                WHERE submission_id = ? AND state = ?
                """,
                (new_state.value, updated_at, submission_id, expected_state.value),
            )
        else:
            cursor = await self._conn.execute(
                """
                UPDATE submissions SET state = ?, feedback = ?, updated_at = ?
                WHERE submission_id = ? AND state = ?
                """,
                (
                    new_state.value,
                    feedback,
                    updated_at,
                    submission_id,
                    expected_state.value,
                ),
            )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_submission(row: aiosqlite.Row) -> Submission:
        return Submission(
            submission_id=row["submission_id"],
            order_id=row["order_id"],
            writer_id=row["writer_id"],
            file_url=row["file_url"],
            notes=row["notes"],
            feedback=row["feedback"],
            state=SubmissionState(row["state"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
