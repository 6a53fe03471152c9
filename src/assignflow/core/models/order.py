"""Order Domain Model

订单是核心聚合。work_code 仅由支付核验闸门写入，
assigned_writer_id 仅由写手招募引擎写入。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import OrderStatus


class Order(BaseModel):
    """Order 数据模型

    work_code 非空当且仅当该订单有一笔支付按 100% 核验通过；
    assigned_writer_id 非空当且仅当存在一条 assigned 状态的 WriterInterest。
    """

    order_id: str = Field(description="唯一标识，ULID 格式")
    client_id: str = Field(description="下单客户 ID")
    topic: str = Field(description="题目")
    subject: str = Field(default="", description="学科")
    service: str = Field(default="", description="服务类型")
    urgency: str = Field(default="normal", description="紧急程度")
    description: str = Field(default="", description="需求说明")
    query_code: str = Field(description="支付前引用码")
    work_code: str | None = Field(default=None, description="支付确认后引用码")
    status: OrderStatus = Field(
        default=OrderStatus.PENDING_QUERY, description="当前状态"
    )
    assigned_writer_id: str | None = Field(default=None, description="当前承接写手")
    basic_price: float | None = Field(default=None, description="基础报价")
    discount: float = Field(default=0.0, description="折扣")
    total_price: float | None = Field(default=None, description="最终价格")
    deadline_at: datetime | None = Field(default=None, description="截止时间")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class ChatAccess(BaseModel):
    """订单上下文中的聊天访问三元组"""

    order_id: str
    client_id: str
    writer_id: str | None = None
    bde_id: str | None = None
