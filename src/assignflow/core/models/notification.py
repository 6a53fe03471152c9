"""Notification Domain Model -- 仅 is_read 可变"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import NotificationLevel


class NotificationMessage(BaseModel):
    """待扇出的通知内容（尚未绑定接收人）"""

    title: str = Field(description="标题")
    message: str = Field(description="正文")
    level: NotificationLevel = Field(
        default=NotificationLevel.INFO, description="通知级别"
    )
    order_id: str | None = Field(default=None, description="关联订单 ID")
    link_url: str = Field(default="", description="跳转链接")


class Notification(BaseModel):
    """持久化的单接收人通知"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="接收人 ID")
    order_id: str | None = Field(default=None, description="关联订单 ID")
    level: NotificationLevel = Field(description="通知级别")
    title: str = Field(description="标题")
    message: str = Field(description="正文")
    link_url: str = Field(default="", description="跳转链接")
    is_read: bool = Field(default=False, description="是否已读")
    created_at: datetime = Field(description="创建时间")
