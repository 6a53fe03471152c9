"""报价与支付模型"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import PaymentState


class Quotation(BaseModel):
    """报价 -- 每个订单至多一条，可更新"""

    quotation_id: str = Field(description="唯一标识，ULID 格式")
    order_id: str = Field(description="关联订单 ID")
    quoted_price: float = Field(description="基础报价")
    urgency_charge: float = Field(default=0.0, description="加急费用")
    discount: float = Field(default=0.0, description="折扣")
    tax: float = Field(default=0.0, description="税费（仅记录）")
    final_price: float = Field(description="最终价格")
    notes: str = Field(default="", description="报价备注")
    quoted_by: str = Field(description="报价人 ID")
    accepted_at: datetime | None = Field(default=None, description="客户接受时间")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class Payment(BaseModel):
    """支付记录 -- 每个订单可有多笔"""

    payment_id: str = Field(description="唯一标识，ULID 格式")
    order_id: str = Field(description="关联订单 ID")
    payer_id: str = Field(description="付款客户 ID")
    amount: float = Field(description="支付金额")
    method: str = Field(default="", description="支付方式")
    reference: str = Field(default="", description="凭证地址（不透明引用）")
    state: PaymentState = Field(default=PaymentState.PENDING, description="核验状态")
    verified_percentage: float | None = Field(default=None, description="核验比例")
    rejection_reason: str = Field(default="", description="拒绝理由")
    verified_by: str | None = Field(default=None, description="核验人 ID")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
