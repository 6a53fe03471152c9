"""User 投影 -- 身份服务的最小只读视图"""

from pydantic import BaseModel, Field

from .enums import Role


class User(BaseModel):
    """用户

    工作流只信任 role 与 is_active 两个字段。
    """

    user_id: str = Field(description="唯一标识")
    role: Role = Field(description="角色")
    is_active: bool = Field(default=True, description="是否启用")
    full_name: str = Field(default="", description="姓名")
    email: str = Field(default="", description="邮箱")
    bde_id: str | None = Field(default=None, description="负责该客户的 BDE")
