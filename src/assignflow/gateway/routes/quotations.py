"""报价路由

PUT  /api/orders/{order_id}/quotation: 新建或更新报价（BDE / 管理员）
POST /api/orders/{order_id}/quotation/accept: 客户接受报价
"""

from assignflow.core.workflow.quotation import QuotationGate
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view, order_view

router = APIRouter()


class QuotationRequest(BaseModel):
    """报价请求体"""

    base_price: float = Field(description="基础报价")
    discount: float = Field(default=0.0, description="折扣")
    urgency_charge: float = Field(default=0.0, description="加急费用")
    tax: float = Field(default=0.0, description="税费（仅记录）")
    notes: str = Field(default="", description="报价备注")
    final_price: float | None = Field(
        default=None, description="最终价格，缺省为 base + urgency - discount"
    )


@router.put("/api/orders/{order_id}/quotation")
async def save_quotation(
    order_id: str,
    body: QuotationRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    gate = QuotationGate(store_group, fanout)
    quotation = await gate.create_or_update_quotation(
        order_id,
        actor_id,
        base_price=body.base_price,
        discount=body.discount,
        urgency_charge=body.urgency_charge,
        tax=body.tax,
        notes=body.notes,
        final_price=body.final_price,
    )
    return {"quotation": model_view(quotation)}


@router.post("/api/orders/{order_id}/quotation/accept")
async def accept_quotation(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    gate = QuotationGate(store_group, fanout)
    order = await gate.accept_quotation(order_id, actor_id)
    return {"order": order_view(order)}
