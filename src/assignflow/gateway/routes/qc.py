"""QC / 交付路由

POST /api/orders/{order_id}/submissions: 承接写手提交稿件
GET  /api/orders/{order_id}/submissions: 提交记录与最新 QC 状态
POST /api/submissions/{submission_id}/approve: QC 通过
POST /api/submissions/{submission_id}/revision: QC 退回
POST /api/orders/{order_id}/deliver: 交付
POST /api/orders/{order_id}/complete: 完成
"""

from assignflow.core.workflow.orders import OrderService
from assignflow.core.workflow.qc import QCPipeline
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view, order_view

router = APIRouter()


class SubmitWorkRequest(BaseModel):
    file_url: str = Field(description="稿件地址")
    notes: str = Field(default="", description="写手备注")


class ReviewRequest(BaseModel):
    feedback: str = Field(default="", description="QC 反馈（退回时必填）")


@router.post("/api/orders/{order_id}/submissions")
async def submit_work(
    order_id: str,
    body: SubmitWorkRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    pipeline = QCPipeline(store_group, fanout)
    submission = await pipeline.submit_work(
        order_id, actor_id, body.file_url, notes=body.notes
    )
    return JSONResponse(
        status_code=201, content={"submission": model_view(submission)}
    )


@router.get("/api/orders/{order_id}/submissions")
async def list_submissions(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    await OrderService(store_group, fanout).view_order(order_id, actor_id)
    pipeline = QCPipeline(store_group, fanout)
    submissions = await pipeline.list_submissions(order_id)
    latest = await pipeline.latest_qc_status(order_id)
    return {
        "order_id": order_id,
        "latest_qc_status": latest.value if latest else None,
        "submissions": [model_view(s) for s in submissions],
    }


@router.post("/api/submissions/{submission_id}/approve")
async def approve_submission(
    submission_id: str,
    body: ReviewRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    pipeline = QCPipeline(store_group, fanout)
    submission = await pipeline.approve_submission(
        submission_id, actor_id, feedback=body.feedback
    )
    return {"submission": model_view(submission)}


@router.post("/api/submissions/{submission_id}/revision")
async def request_revision(
    submission_id: str,
    body: ReviewRequest,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    pipeline = QCPipeline(store_group, fanout)
    submission = await pipeline.request_revision(
        submission_id, actor_id, body.feedback
    )
    return {"submission": model_view(submission)}


@router.post("/api/orders/{order_id}/deliver")
async def deliver_order(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    pipeline = QCPipeline(store_group, fanout)
    order = await pipeline.deliver_order(order_id, actor_id)
    return {"order": order_view(order)}


@router.post("/api/orders/{order_id}/complete")
async def complete_order(
    order_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    pipeline = QCPipeline(store_group, fanout)
    order = await pipeline.complete_order(order_id, actor_id)
    return {"order": order_view(order)}
