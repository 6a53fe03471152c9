"""请求日志 / 订单追踪 / 健康检查测试"""

import pytest
from assignflow.core.errors import (
    ConflictError,
    DuplicateInterestError,
    NotFoundError,
    OrderClosedError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
)
from assignflow.gateway.main import error_status
from assignflow.gateway.middleware.trace_mw import extract_order_id


class TestRequestLogging:
    async def test_request_id_in_response_header(self, client):
        resp = await client.get("/health")

        request_id = resp.headers.get("X-Request-ID")
        assert request_id is not None
        assert len(request_id) == 26

    async def test_request_ids_differ(self, client):
        first = await client.get("/health")
        second = await client.get("/health")
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


class TestTrace:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/orders/01HZX5Y0000000000000000000/assign", "01HZX5Y0000000000000000000"),
            ("/api/orders/01HZX5Y0000000000000000000", "01HZX5Y0000000000000000000"),
            ("/api/orders", None),
            ("/api/orders/short/assign", None),
            ("/api/payments/01HZX5Y0000000000000000000/verify", None),
        ],
    )
    def test_extract_order_id(self, path, expected):
        assert extract_order_id(path) == expected


class TestErrorStatus:
    @pytest.mark.parametrize(
        "error,status_code",
        [
            (NotFoundError("order", "x"), 404),
            (UnauthorizedError("nope"), 403),
            (OrderClosedError("x", "DELIVERED"), 403),
            (ConflictError("stale"), 409),
            (DuplicateInterestError("again"), 409),
            (ValidationError("bad"), 422),
            (WorkflowError("generic"), 400),
        ],
    )
    def test_mapping(self, error, status_code):
        assert error_status(error) == status_code


class TestHealthCheck:
    async def test_health_returns_200(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_ready_checks(self, client):
        resp = await client.get("/ready")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ready"
        assert data["checks"]["sqlite"] == "ok"
        assert data["checks"]["wal_mode"] == "ok"

    async def test_ready_503_when_sqlite_closed(self, client, test_app, tmp_path):
        """SQLite 不可用时返回 503"""
        from assignflow.core.store import create_store_group

        broken = await create_store_group(str(tmp_path / "broken.db"))
        await broken.close()
        healthy = test_app.state.store_group
        test_app.state.store_group = broken
        try:
            resp = await client.get("/ready")
        finally:
            test_app.state.store_group = healthy

        assert resp.status_code == 503
        assert resp.json()["checks"]["wal_mode"] == "skipped"
