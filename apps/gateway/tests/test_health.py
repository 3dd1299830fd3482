"""健康检查测试

测试内容：
1. GET /health 返回 200 + ok
2. GET /ready 监听器运行时返回 200 + checks 结构
3. GET /ready 监听器未运行 / agent gateway 不可达时返回 503
"""

import pytest_asyncio
from httpx import AsyncClient
from ticketflow.gateway.services.change_detector import ChangeDetector


@pytest_asyncio.fixture
async def watching(app, tickets_dir):
    detector = ChangeDetector(stability_s=0.05, use_polling=True, poll_interval_s=0.1)
    detector.start(tickets_dir)
    app.state.change_detector = detector
    yield detector
    await detector.stop()


class TestHealthCheck:
    async def test_health_returns_200(self, client: AsyncClient):
        """GET /health 永远返回 200"""
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_ready_when_watching(self, client: AsyncClient, watching, write_ticket):
        write_ticket("TICK-001")

        resp = await client.get("/ready")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ready"
        assert data["profile"] == "core"
        checks = data["checks"]
        assert checks["tickets_dir"] == "ok"
        assert checks["ticket_count"] == 1
        assert checks["watcher"] == "running"
        assert checks["agent_gateway"] == "skipped"
        assert checks["enrichment"] == {
            "enabled": True,
            "gateway_url": "http://localhost:18789",
            "has_token": True,
            "active_sessions": 0,
        }

    async def test_not_ready_without_watcher(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"]["watcher"] == "stopped"

    async def test_agent_profile_probes_gateway(
        self, client: AsyncClient, watching, agent_client
    ):
        resp = await client.get("/ready", params={"profile": "agent"})
        assert resp.status_code == 200
        assert resp.json()["checks"]["agent_gateway"] == "ok"
        agent_client.health_check.assert_awaited_once()

    async def test_agent_gateway_unreachable(
        self, client: AsyncClient, watching, agent_client
    ):
        agent_client.health_check.return_value = False
        resp = await client.get("/ready", params={"profile": "full"})
        assert resp.status_code == 503
        assert resp.json()["checks"]["agent_gateway"] == "unreachable"

    async def test_agent_probe_error_is_unreachable(
        self, client: AsyncClient, watching, agent_client
    ):
        agent_client.health_check.side_effect = RuntimeError("boom")
        resp = await client.get("/ready", params={"profile": "agent"})
        assert resp.status_code == 503
        assert resp.json()["checks"]["agent_gateway"] == "unreachable"
