"""通知路由

GET  /api/notifications: 当前用户的通知列表与未读数
POST /api/notifications/{notification_id}/read: 标记单条已读
POST /api/notifications/read-all: 全部标记已读
"""

from assignflow.core.workflow.orders import OrderService
from fastapi import APIRouter, Depends, Query
from starlette.responses import JSONResponse

from ..deps import get_actor_id, get_fanout, get_store_group
from ..views import model_view

router = APIRouter()


@router.get("/api/notifications")
async def list_notifications(
    unread_only: bool = Query(default=False, description="只返回未读通知"),
    limit: int = Query(default=50, ge=1, le=200, description="最多返回条数"),
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    user = await OrderService(store_group, fanout).authorize(
        actor_id, "list_notifications"
    )
    notifications = await fanout.list_for_user(
        user.user_id, unread_only=unread_only, limit=limit
    )
    return {
        "unread_count": await fanout.unread_count(user.user_id),
        "notifications": [model_view(n) for n in notifications],
    }


@router.post("/api/notifications/read-all")
async def mark_all_notifications_read(
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    user = await OrderService(store_group, fanout).authorize(
        actor_id, "mark_all_read"
    )
    updated = await fanout.mark_all_read(user.user_id)
    return {"updated": updated}


@router.post("/api/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    actor_id: str = Depends(get_actor_id),
    store_group=Depends(get_store_group),
    fanout=Depends(get_fanout),
):
    """标记已读；通知不存在或不属于当前用户时返回 404"""
    user = await OrderService(store_group, fanout).authorize(actor_id, "mark_read")
    if not await fanout.mark_read(notification_id, user.user_id):
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "code": "NOTIFICATION_NOT_FOUND",
                    "message": f"notification with id {notification_id} does not exist",
                    "details": {},
                }
            },
        )
    return {"notification_id": notification_id, "is_read": True}
