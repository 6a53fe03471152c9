"""订单路由

POST /api/orders: 客户下单（支持 idempotency_key 去重）
GET  /api/orders: 按角色可见范围列出订单，支持 status 筛选
GET  /api/orders/{order_id}: 订单详情（报价、招募、提交、审计轨迹）
GET  /api/orders/{order_id}/transitions: 操作者当前可用的目标状态
POST /api/orders/{order_id}/status: 通用受控流转
GET  /api/orders/{order_id}/access: 聊天访问三元组
"""

from assignflow.core.workflow.orders import OrderService
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view, order_view, parse_status

router = APIRouter()


class CreateOrderRequest(BaseModel):
    """下单请求体"""

    topic: str = Field(description="题目")
    subject: str = Field(default="", description="学科")
    service: str = Field(default="", description="服务类型")
    urgency: str = Field(default="normal", description="紧急程度")
    description: str = Field(default="", description="需求说明")
    deadline_at: str | None = Field(default=None, description="截止时间（ISO-8601）")
    idempotency_key: str | None = Field(default=None, description="幂等键，用于去重")


class TransitionRequest(BaseModel):
    """通用流转请求体"""

    target: str = Field(description="目标状态名或状态码")
    expected_status: str | None = Field(
        default=None, description="调用方读取到的当前状态，不符时返回 409"
    )
    reason: str = Field(default="", description="流转说明")


@router.post("/api/orders")
async def create_order(
    body: CreateOrderRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """客户下单

    - 新订单返回 201 Created
    - idempotency_key 已存在返回 200 OK 与已有订单
    """
    service = OrderService(store_group, fanout)
    order, created = await service.create_order(
        actor_id,
        topic=body.topic,
        subject=body.subject,
        service=body.service,
        urgency=body.urgency,
        description=body.description,
        deadline_at=body.deadline_at,
        idempotency_key=body.idempotency_key,
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content={"order": order_view(order), "created": created},
    )


@router.get("/api/orders")
async def list_orders(
    status: str | None = Query(default=None, description="按状态筛选（名称或状态码）"),
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """按角色可见范围列出订单，按 created_at 倒序"""
    service = OrderService(store_group, fanout)
    orders = await service.list_orders(
        actor_id, status=parse_status(status) if status else None
    )
    return {"orders": [order_view(o) for o in orders]}


@router.get("/api/orders/{order_id}")
async def get_order_detail(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """订单详情，包含报价、写手意向、提交记录与审计轨迹"""
    service = OrderService(store_group, fanout)
    order = await service.view_order(order_id, actor_id)

    quotation = await store_group.quotation_store.get_for_order(order_id)
    interests = await store_group.interest_store.list_for_order(order_id)
    submissions = await store_group.submission_store.list_for_order(order_id)
    audit_trail = await store_group.audit_store.list_for_order(order_id)

    return {
        "order": order_view(order),
        "quotation": model_view(quotation),
        "interests": [model_view(i) for i in interests],
        "submissions": [model_view(s) for s in submissions],
        "audit_trail": [model_view(e) for e in audit_trail],
    }


@router.get("/api/orders/{order_id}/transitions")
async def get_allowed_transitions(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """操作者在订单当前状态下的合法目标状态"""
    service = OrderService(store_group, fanout)
    targets = await service.allowed_next(order_id, actor_id)
    return {"order_id": order_id, "allowed": [t.name for t in targets]}


@router.post("/api/orders/{order_id}/status")
async def transition_order_status(
    order_id: str,
    body: TransitionRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """通用受控流转（开始工作、取消、拒绝询单、撤回报价）"""
    service = OrderService(store_group, fanout)
    order = await service.transition_status(
        order_id,
        actor_id,
        parse_status(body.target),
        expected_status=(
            parse_status(body.expected_status) if body.expected_status else None
        ),
        reason=body.reason,
    )
    return {"order": order_view(order)}


@router.get("/api/orders/{order_id}/access")
async def get_chat_access(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """聊天访问三元组 (client, writer, bde)"""
    service = OrderService(store_group, fanout)
    await service.view_order(order_id, actor_id)
    access = await service.access_tuple(order_id)
    return model_view(access)
