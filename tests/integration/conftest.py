"""集成测试共享 fixture"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from assignflow.core.config import DeliveryConfig
from assignflow.gateway.main import attach_state, create_app
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def integration_app(store_group):
    """集成测试用 FastAPI app"""
    app = create_app()
    attach_state(app, store_group, DeliveryConfig())

    yield app

    await app.state.fanout.drain()


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
