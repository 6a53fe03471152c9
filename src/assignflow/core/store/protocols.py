"""Store Protocol 接口定义

工作流依赖的身份抽象，使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol

from ..models.enums import Role
from ..models.user import User


class UserDirectory(Protocol):
    """身份服务接口 -- 工作流只信任 role 与 is_active"""

    async def get_user(self, user_id: str) -> User | None:
        """根据 user_id 查询用户"""
        ...

    async def list_user_ids(self, role: Role, active_only: bool = True) -> list[str]:
        """按角色列出用户 ID（按 user_id 排序）"""
        ...
