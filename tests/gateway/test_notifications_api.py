"""通知 API 与 SSE 测试

测试内容：
1. 通知列表 / 未读数 / 标记已读
2. SSEHub 订阅、广播、满队列剔除
3. 工作流通知实时推送到 SSEHub
4. 通知流端点的身份校验
"""

import asyncio
from datetime import UTC, datetime

from assignflow.core.models import Notification, NotificationLevel
from assignflow.gateway.routes.stream import live_events
from assignflow.gateway.services.sse_hub import SSEHub
from ulid import ULID


def _notification(user_id: str, title: str = "hello") -> Notification:
    return Notification(
        notification_id=str(ULID()),
        user_id=user_id,
        level=NotificationLevel.INFO,
        title=title,
        message="body",
        created_at=datetime.now(UTC),
    )


class TestNotificationsApi:
    async def test_list_and_mark_read(self, api, actors):
        await api.post(actors.client, "/api/orders", {"topic": "Essay A"})
        await api.post(actors.client, "/api/orders", {"topic": "Essay B"})

        resp = await api.get(actors.bde, "/api/notifications")
        data = resp.json()
        assert data["unread_count"] == 2
        assert [n["title"].startswith("New query") for n in data["notifications"]] == [True, True]

        first_id = data["notifications"][0]["notification_id"]
        resp = await api.post(actors.bde, f"/api/notifications/{first_id}/read")
        assert resp.json() == {"notification_id": first_id, "is_read": True}

        resp = await api.get(actors.bde, "/api/notifications", unread_only="true")
        assert len(resp.json()["notifications"]) == 1

        resp = await api.post(actors.bde, "/api/notifications/read-all")
        assert resp.json() == {"updated": 1}

    async def test_mark_read_not_found(self, api, actors):
        resp = await api.post(actors.client, f"/api/notifications/{ULID()}/read")

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOTIFICATION_NOT_FOUND"

    async def test_cannot_read_others_notification(self, api, actors):
        await api.post(actors.client, "/api/orders", {"topic": "Essay"})
        resp = await api.get(actors.bde, "/api/notifications")
        note_id = resp.json()["notifications"][0]["notification_id"]

        resp = await api.post(actors.other_bde, f"/api/notifications/{note_id}/read")
        assert resp.status_code == 404

    async def test_inactive_user_rejected(self, api, actors):
        resp = await api.get(actors.inactive_writer, "/api/notifications")
        assert resp.status_code == 403


class TestSSEHub:
    async def test_subscribe_broadcast_unsubscribe(self):
        hub = SSEHub()
        queue = await hub.subscribe("user-1")

        await hub.broadcast("user-1", _notification("user-1", "ping"))
        await hub.broadcast("user-2", _notification("user-2", "other"))

        received = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert received.title == "ping"
        assert queue.empty()

        await hub.unsubscribe("user-1", queue)
        assert hub.subscriber_count("user-1") == 0

    async def test_full_queue_dropped(self):
        hub = SSEHub(queue_maxsize=1)
        slow = await hub.subscribe("user-1")
        await hub.broadcast("user-1", _notification("user-1"))

        await hub.broadcast("user-1", _notification("user-1"))

        assert hub.subscriber_count("user-1") == 0
        # 积压被丢弃，只剩结束标记
        assert slow.qsize() == 1
        assert slow.get_nowait() is None

    async def test_evicted_stream_ends(self):
        """被剔除的订阅：已排队的通知照常推送，读到结束标记后流结束"""
        hub = SSEHub(queue_maxsize=2)
        queue = await hub.subscribe("user-1")
        delivered = _notification("user-1", "first")
        await hub.broadcast("user-1", delivered)
        events = live_events(queue, seen=set(), heartbeat_interval=0.05)
        first = await asyncio.wait_for(anext(events), timeout=1.0)
        assert first["id"] == delivered.notification_id

        for _ in range(3):
            await hub.broadcast("user-1", _notification("user-1"))

        remaining = [event async for event in events]
        assert remaining == []
        assert hub.subscriber_count("user-1") == 0

    async def test_live_events_heartbeat_and_skip_seen(self):
        queue: asyncio.Queue = asyncio.Queue()
        replayed = _notification("user-1", "replayed")
        fresh = _notification("user-1", "fresh")
        events = live_events(queue, seen={replayed.notification_id}, heartbeat_interval=0.05)

        assert await asyncio.wait_for(anext(events), timeout=1.0) == {"comment": "heartbeat"}
        for item in (replayed, fresh, None):
            queue.put_nowait(item)
        remaining = [event async for event in events]
        assert [e["id"] for e in remaining] == [fresh.notification_id]

    async def test_workflow_notification_pushed(self, api, test_app, actors):
        queue = await test_app.state.sse_hub.subscribe(actors.bde)

        await api.post(actors.client, "/api/orders", {"topic": "Policy brief"})

        pushed = await asyncio.wait_for(queue.get(), timeout=1.0)
        assert pushed.user_id == actors.bde
        assert pushed.title.startswith("New query")
        await test_app.state.sse_hub.unsubscribe(actors.bde, queue)


class TestStreamEndpoint:
    async def test_missing_identity_returns_401(self, client):
        resp = await client.get("/api/stream/notifications")

        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "MISSING_ACTOR"

    async def test_unknown_user_returns_403(self, client):
        resp = await client.get("/api/stream/notifications", params={"user_id": "ghost"})
        assert resp.status_code == 403
