"""通知扇出

提交后执行：先为每个接收人持久化一条通知（事实来源），
再尽力而为地做实时推送与外部投递（邮件/短信网关）。
任何下游失败只记录日志，不向调用方传播。
"""

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
import structlog
from ulid import ULID

from ..config import NOTIFICATION_TITLE_MAX_LENGTH, DeliveryConfig
from ..errors import DownstreamNonFatal
from ..models.notification import Notification, NotificationMessage
from ..store import StoreGroup

log = structlog.get_logger()


class NotificationDeliverer(Protocol):
    """外部投递接口（邮件 / 短信）-- best-effort，非阻塞"""

    async def deliver(self, recipient_id: str, payload: dict[str, Any]) -> None:
        ...


class RealtimePublisher(Protocol):
    """实时推送接口（SSE 等）"""

    async def broadcast(self, user_id: str, notification: Notification) -> None:
        ...


class LoggingDeliverer:
    """默认投递实现：仅记录日志"""

    async def deliver(self, recipient_id: str, payload: dict[str, Any]) -> None:
        await log.ainfo(
            "notification_delivered",
            recipient_id=recipient_id,
            title=payload.get("title"),
            channel="log",
        )


class WebhookDeliverer:
    """通过 HTTP POST 转发到外部通知网关"""

    def __init__(self, webhook_url: str, timeout_s: float = 5.0) -> None:
        self._webhook_url = webhook_url
        self._timeout_s = timeout_s

    async def deliver(self, recipient_id: str, payload: dict[str, Any]) -> None:
        body = {"recipient_id": recipient_id, **payload}
        async with httpx.AsyncClient() as http_client:
            resp = await http_client.post(
                self._webhook_url, json=body, timeout=self._timeout_s
            )
            resp.raise_for_status()


def build_deliverer(config: DeliveryConfig) -> NotificationDeliverer:
    """根据配置选择投递实现"""
    if config.mode == "webhook" and config.webhook_url:
        return WebhookDeliverer(config.webhook_url, timeout_s=config.timeout_s)
    return LoggingDeliverer()


class NotificationFanout:
    """通知扇出器 + 通知读取面

    持久化行至少写入一次；实时推送与外部投递均为附加的尽力而为步骤。
    """

    def __init__(
        self,
        store_group: StoreGroup,
        publisher: RealtimePublisher | None = None,
        deliverer: NotificationDeliverer | None = None,
        timeout_s: float = 5.0,
    ) -> None:
        self._stores = store_group
        self._publisher = publisher
        self._deliverer = deliverer or LoggingDeliverer()
        self._timeout_s = timeout_s
        self._pending: set[asyncio.Task] = set()

    async def notify(
        self,
        recipients: Iterable[str | None],
        message: NotificationMessage,
    ) -> list[Notification]:
        """向每个去重后的接收人写入一条通知并触发推送 / 投递

        必须在 unit of work 提交之后调用。

        Returns:
            成功持久化的通知；持久化失败时返回空列表
        """
        user_ids = list(dict.fromkeys(r for r in recipients if r))
        if not user_ids:
            return []

        now = datetime.now(UTC)
        notifications = [
            Notification(
                notification_id=str(ULID()),
                user_id=user_id,
                order_id=message.order_id,
                level=message.level,
                title=message.title[:NOTIFICATION_TITLE_MAX_LENGTH],
                message=message.message,
                link_url=message.link_url,
                created_at=now,
            )
            for user_id in user_ids
        ]

        try:
            async with self._stores.transaction():
                for notification in notifications:
                    await self._stores.notification_store.create_notification(
                        notification
                    )
        except Exception as e:
            failure = DownstreamNonFatal("notification_persist", e)
            log.warning(
                "notification_persist_failed",
                order_id=message.order_id,
                recipients=user_ids,
                error=failure.message,
            )
            return []

        for notification in notifications:
            await self._push(notification)
            self._schedule_delivery(notification)

        return notifications

    async def _push(self, notification: Notification) -> None:
        if self._publisher is None:
            return
        try:
            await self._publisher.broadcast(notification.user_id, notification)
        except Exception as e:
            log.warning(
                "notification_push_failed",
                user_id=notification.user_id,
                error=DownstreamNonFatal("realtime_push", e).message,
            )

    def _schedule_delivery(self, notification: Notification) -> None:
        """外部投递 fire-and-forget，不占用事务"""
        task = asyncio.create_task(self._deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, notification: Notification) -> None:
        payload = {
            "notification_id": notification.notification_id,
            "order_id": notification.order_id,
            "level": notification.level.value,
            "title": notification.title,
            "message": notification.message,
            "link_url": notification.link_url,
        }
        try:
            await asyncio.wait_for(
                self._deliverer.deliver(notification.user_id, payload),
                timeout=self._timeout_s,
            )
        except TimeoutError:
            log.warning(
                "notification_delivery_timeout",
                user_id=notification.user_id,
                timeout_s=self._timeout_s,
            )
        except Exception as e:
            log.warning(
                "notification_delivery_failed",
                user_id=notification.user_id,
                error=DownstreamNonFatal("notification_delivery", e).message,
            )

    async def drain(self) -> None:
        """等待所有在途投递结束（测试与关闭时使用）"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---- 读取面 ----

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        return await self._stores.notification_store.list_for_user(
            user_id, unread_only=unread_only, limit=limit
        )

    async def unread_count(self, user_id: str) -> int:
        return await self._stores.notification_store.unread_count(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """标记已读；不存在或不属于该用户时返回 False"""
        async with self._stores.transaction():
            return await self._stores.notification_store.mark_read(
                notification_id, user_id
            )

    async def mark_all_read(self, user_id: str) -> int:
        async with self._stores.transaction():
            return await self._stores.notification_store.mark_all_read(user_id)
