"""UserStore SQLite 实现 -- 身份服务的最小投影"""

import aiosqlite

from ..models.enums import Role
from ..models.user import User


class SqliteUserStore:
    """UserDirectory 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_user(self, user: User) -> None:
        """写入用户（用于初始化数据与测试）"""
        await self._conn.execute(
            """
            INSERT INTO users (user_id, role, is_active, full_name, email, bde_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user.user_id,
                user.role.value,
                int(user.is_active),
                user.full_name,
                user.email,
                user.bde_id,
            ),
        )

    async def get_user(self, user_id: str) -> User | None:
        cursor = await self._conn.execute(
            "SELECT * FROM users WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    async def list_user_ids(self, role: Role, active_only: bool = True) -> list[str]:
        """按角色列出用户 ID"""
        sql = "SELECT user_id FROM users WHERE role = ?"
        if active_only:
            sql += " AND is_active = 1"
        cursor = await self._conn.execute(sql + " ORDER BY user_id", (role.value,))
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def set_active(self, user_id: str, is_active: bool) -> None:
        await self._conn.execute(
            "UPDATE users SET is_active = ? WHERE user_id = ?",
            (int(is_active), user_id),
        )

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        return User(
            user_id=row["user_id"],
            role=Role(row["role"]),
            is_active=bool(row["is_active"]),
            full_name=row["full_name"],
            email=row["email"],
            bde_id=row["bde_id"],
        )
