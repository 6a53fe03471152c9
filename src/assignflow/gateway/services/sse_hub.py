"""SSEHub -- 内存中通知广播器

按 user_id 分组，每个订阅连接持有一个 asyncio.Queue。
队列写满的连接被视为失效并移除：清空积压后放入 None，
流端点读到 None 即结束响应，客户端带 Last-Event-ID 重连补齐。
"""

import asyncio
from collections import defaultdict

import structlog
from assignflow.core.models.notification import Notification

log = structlog.get_logger()


class SSEHub:
    """SSE 通知广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # user_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, user_id: str) -> asyncio.Queue:
        """订阅指定用户的通知流

        Args:
            user_id: 接收人 ID

        Returns:
            asyncio.Queue 实例，新通知会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[user_id].add(queue)
        return queue

    async def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        self._subscribers[user_id].discard(queue)
        if not self._subscribers[user_id]:
            del self._subscribers[user_id]

    async def broadcast(self, user_id: str, notification: Notification) -> None:
        """向指定用户的所有连接推送通知"""
        dead_queues = []
        for queue in self._subscribers.get(user_id, set()):
            try:
                queue.put_nowait(notification)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        for q in dead_queues:
            self._subscribers[user_id].discard(q)
            _close_queue(q)
        if dead_queues:
            log.warning(
                "sse_subscriber_dropped",
                user_id=user_id,
                dropped=len(dead_queues),
            )
        if user_id in self._subscribers and not self._subscribers[user_id]:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))


def _close_queue(queue: asyncio.Queue) -> None:
    """丢弃积压的通知并放入结束标记 None"""
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(None)
