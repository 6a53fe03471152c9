"""gateway 测试配置 -- FastAPI app + httpx AsyncClient

ASGITransport 不触发 lifespan，这里手动挂载 StoreGroup / SSEHub / 通知扇出器。
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from assignflow.core.config import DeliveryConfig
from assignflow.gateway.main import attach_state, create_app
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def test_app(store_group):
    app = create_app()
    # 手动初始化（绕过 lifespan）
    attach_state(app, store_group, DeliveryConfig())
    yield app
    await app.state.fanout.drain()


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


class Api:
    """按角色发请求的小工具"""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def post(self, actor: str, url: str, json: dict | None = None):
        return await self.client.post(url, json=json or {}, headers={"X-User-Id": actor})

    async def put(self, actor: str, url: str, json: dict):
        return await self.client.put(url, json=json, headers={"X-User-Id": actor})

    async def get(self, actor: str, url: str, **params):
        return await self.client.get(url, params=params, headers={"X-User-Id": actor})


@pytest_asyncio.fixture
async def api(client) -> Api:
    return Api(client)
