"""SSE 通知流路由

GET /api/stream/notifications: 先推送未读历史，再实时推送新通知。
支持 Last-Event-ID 断线重连（ULID 有序，跳过已接收的通知）、心跳保活。
EventSource 无法自定义请求头，允许用 user_id 查询参数代替 X-User-Id。
"""

import asyncio
import json
from collections.abc import AsyncIterator

import structlog
from assignflow.core.config import SSE_HEARTBEAT_INTERVAL
from assignflow.core.models.notification import Notification
from assignflow.core.workflow.orders import OrderService
from fastapi import APIRouter, Depends, Header, Query, Request
from sse_starlette.sse import EventSourceResponse

from ..deps import MissingActorError, get_fanout, get_sse_hub, get_store_group

log = structlog.get_logger()

router = APIRouter()


def _notification_to_sse(notification: Notification) -> dict:
    """将 Notification 转换为 SSE 消息"""
    return {
        "id": notification.notification_id,
        "event": "notification",
        "data": json.dumps(
            notification.model_dump(mode="json"), ensure_ascii=False
        ),
    }


async def live_events(
    queue: asyncio.Queue,
    seen: set[str],
    heartbeat_interval: float = SSE_HEARTBEAT_INTERVAL,
) -> AsyncIterator[dict]:
    """从订阅队列产出 SSE 消息；空闲时发心跳，读到 None（订阅被移除）即结束"""
    while True:
        try:
            notification = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
        except TimeoutError:
            yield {"comment": "heartbeat"}
            continue
        if notification is None:
            log.info("sse_stream_closed_after_eviction")
            return
        if notification.notification_id in seen:
            continue
        yield _notification_to_sse(notification)


@router.get("/api/stream/notifications")
async def stream_notifications(
    request: Request,
    user_id: str | None = Query(default=None, description="X-User-Id 的替代"),
    x_user_id: str | None = Header(default=None),
    store_group=Depends(get_store_group),
    sse_hub=Depends(get_sse_hub),
    fanout=Depends(get_fanout),
):
    """SSE 通知流端点

    1. 推送未读历史（按时间正序）
    2. 注册到 SSEHub 监听新通知
    3. 心跳保活
    """
    actor_id = (x_user_id or user_id or "").strip()
    if not actor_id:
        raise MissingActorError()
    user = await OrderService(store_group, fanout).authorize(
        actor_id, "stream_notifications"
    )

    last_event_id = request.headers.get("last-event-id")

    # 先订阅再读历史，避免两者之间的通知丢失
    queue = await sse_hub.subscribe(user.user_id)

    async def event_generator():
        seen: set[str] = set()
        try:
            history = await fanout.list_for_user(user.user_id, unread_only=True)
            for notification in reversed(history):
                if last_event_id and notification.notification_id <= last_event_id:
                    continue
                seen.add(notification.notification_id)
                yield _notification_to_sse(notification)

            async for event in live_events(queue, seen):
                yield event
        finally:
            await sse_hub.unsubscribe(user.user_id, queue)

    return EventSourceResponse(event_generator())
