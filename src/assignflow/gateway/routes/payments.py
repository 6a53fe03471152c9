"""支付路由

POST /api/orders/{order_id}/payments: 客户提交支付凭证
POST /api/payments/{payment_id}/verify: 管理员核验（100% 时生成工作码）
POST /api/payments/{payment_id}/reject: 管理员拒绝
"""

from assignflow.core.workflow.payment import PaymentGate
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view, order_view

router = APIRouter()


class SubmitPaymentRequest(BaseModel):
    """支付提交请求体"""

    amount: float = Field(description="支付金额")
    method: str = Field(default="", description="支付方式")
    reference: str = Field(default="", description="凭证地址")


class VerifyPaymentRequest(BaseModel):
    """核验请求体"""

    percentage: float = Field(default=100.0, description="核验比例 (0, 100]")


class RejectPaymentRequest(BaseModel):
    """拒绝请求体"""

    reason: str = Field(description="拒绝理由")


@router.post("/api/orders/{order_id}/payments")
async def submit_payment(
    order_id: str,
    body: SubmitPaymentRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    gate = PaymentGate(store_group, fanout)
    payment = await gate.submit_payment(
        order_id,
        actor_id,
        amount=body.amount,
        method=body.method,
        reference=body.reference,
    )
    return JSONResponse(status_code=201, content={"payment": model_view(payment)})


@router.post("/api/payments/{payment_id}/verify")
async def verify_payment(
    payment_id: str,
    body: VerifyPaymentRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    gate = PaymentGate(store_group, fanout)
    payment, order = await gate.verify_payment(
        payment_id, actor_id, percentage=body.percentage
    )
    return {"payment": model_view(payment), "order": order_view(order)}


@router.post("/api/payments/{payment_id}/reject")
async def reject_payment(
    payment_id: str,
    body: RejectPaymentRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    gate = PaymentGate(store_group, fanout)
    payment = await gate.reject_payment(payment_id, actor_id, body.reason)
    return {"payment": model_view(payment)}
