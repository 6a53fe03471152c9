"""写手招募路由

POST /api/orders/{order_id}/invitations: 邀请写手
POST /api/orders/{order_id}/interest: 写手表达兴趣
POST /api/orders/{order_id}/decline: 写手拒绝邀请
POST /api/orders/{order_id}/assign: 指派写手
POST /api/orders/{order_id}/revoke: 撤回写手
POST /api/orders/{order_id}/reassign: 改派
POST /api/orders/{order_id}/evaluation: 承接写手评估任务
GET  /api/orders/{order_id}/interests: 意向列表与当前写手
"""

from assignflow.core.models import Role
from assignflow.core.workflow.recruitment import RecruitmentEngine
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view, order_view

router = APIRouter()


class InviteRequest(BaseModel):
    writer_ids: list[str] = Field(description="被邀请写手 ID 列表")
    note: str = Field(default="", description="邀请说明")


class InterestRequest(BaseModel):
    comment: str = Field(default="", description="写手备注")


class DeclineRequest(BaseModel):
    reason: str = Field(description="拒绝理由")


class AssignRequest(BaseModel):
    writer_id: str = Field(description="写手 ID")


class RevokeRequest(BaseModel):
    reason: str = Field(default="", description="撤回理由")


class ReassignRequest(BaseModel):
    writer_id: str = Field(description="新写手 ID")
    reason: str = Field(default="", description="改派理由")


class EvaluationRequest(BaseModel):
    doable: bool = Field(description="任务是否可完成")
    comment: str = Field(default="", description="评估说明（不可完成时必填）")


@router.post("/api/orders/{order_id}/invitations")
async def invite_writers(
    order_id: str,
    body: InviteRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    result = await engine.invite(order_id, actor_id, body.writer_ids, note=body.note)
    return model_view(result)


@router.post("/api/orders/{order_id}/interest")
async def show_interest(
    order_id: str,
    body: InterestRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    interest = await engine.show_interest(order_id, actor_id, comment=body.comment)
    return {"interest": model_view(interest)}


@router.post("/api/orders/{order_id}/decline")
async def decline_invitation(
    order_id: str,
    body: DeclineRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    interest = await engine.decline(order_id, actor_id, body.reason)
    return {"interest": model_view(interest)}


@router.post("/api/orders/{order_id}/assign")
async def assign_writer(
    order_id: str,
    body: AssignRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    order = await engine.assign(order_id, actor_id, body.writer_id)
    return {"order": order_view(order)}


@router.post("/api/orders/{order_id}/revoke")
async def revoke_writer(
    order_id: str,
    body: RevokeRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    order = await engine.revoke(order_id, actor_id, reason=body.reason)
    return {"order": order_view(order)}


@router.post("/api/orders/{order_id}/reassign")
async def reassign_writer(
    order_id: str,
    body: ReassignRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    order = await engine.reassign(
        order_id, actor_id, body.writer_id, reason=body.reason
    )
    return {"order": order_view(order)}


@router.post("/api/orders/{order_id}/evaluation")
async def evaluate_task(
    order_id: str,
    body: EvaluationRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    engine = RecruitmentEngine(store_group, fanout)
    evaluation = await engine.evaluate_task(
        order_id, actor_id, body.doable, comment=body.comment
    )
    return {"evaluation": model_view(evaluation)}


@router.get("/api/orders/{order_id}/interests")
async def list_interests(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """意向列表（管理员 / BDE 视角）"""
    engine = RecruitmentEngine(store_group, fanout)
    await engine.authorize(actor_id, "list_interests", Role.ADMIN, Role.BDE)
    interests = await engine.list_interests(order_id)
    return {
        "order_id": order_id,
        "assigned_writer_id": await engine.current_assignee(order_id),
        "interests": [model_view(i) for i in interests],
    }
