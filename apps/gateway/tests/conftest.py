"""apps/gateway 测试配置 -- 临时 tickets 目录、mock agent、手动装配的 app"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from ticketflow.agent import AgentClient, AgentConfig, AgentInvocationResult
from ticketflow.core.store import FileTicketStore, create_ticket_store
from ticketflow.gateway.services.broadcast_hub import BroadcastHub
from ticketflow.gateway.services.enrichment import EnrichmentOrchestrator
from ticketflow.gateway.settings import EnrichmentSettings


def iso(value: datetime) -> str:
    return value.isoformat()


@pytest.fixture
def write_ticket(tickets_dir: Path) -> Callable[..., Path]:
    """写入 ticket 文件；created_at 默认为当前时间"""

    def _write(
        ticket_id: str,
        title: str = "Fresh ticket",
        status: str = "backlog",
        priority: str = "medium",
        project: str = "Gateway",
        body: str = "Short body",
        created_at: datetime | None = None,
        extra: str = "",
    ) -> Path:
        created = iso(created_at or datetime.now(UTC))
        path = tickets_dir / f"{ticket_id}.md"
        path.write_text(
            "---\n"
            f"id: {ticket_id}\n"
            f"title: {title}\n"
            f"status: {status}\n"
            f"priority: {priority}\n"
            f"project: {project}\n"
            f"createdAt: '{created}'\n"
            f"updatedAt: '{created}'\n"
            f"{extra}"
            "---\n"
            f"{body}\n",
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def ticket_store(tickets_dir: Path) -> FileTicketStore:
    return create_ticket_store(tickets_dir)


@pytest.fixture
def agent_client() -> AsyncMock:
    """Mock AgentClient：默认调用成功"""
    client = AsyncMock(spec=AgentClient)
    client.config = AgentConfig(token=SecretStr("tok-test"))
    client.invoke.return_value = AgentInvocationResult(child_session_key="child-1")
    client.health_check.return_value = True
    return client


@pytest.fixture
def enrichment_settings() -> EnrichmentSettings:
    """无重试等待、对账不会在测试期间自动触发"""
    return EnrichmentSettings(retry_delay_s=0, reconcile_after_s=3600)


@pytest_asyncio.fixture
async def orchestrator(
    ticket_store, agent_client, enrichment_settings
) -> AsyncGenerator[EnrichmentOrchestrator, None]:
    orch = EnrichmentOrchestrator(ticket_store, agent_client, enrichment_settings)
    yield orch
    await orch.shutdown()


@pytest.fixture
def hub(ticket_store) -> BroadcastHub:
    return BroadcastHub(ticket_store)


@pytest_asyncio.fixture
async def app(ticket_store, hub, orchestrator, agent_client):
    """测试用 FastAPI app（手动初始化，绕过 lifespan）"""
    from ticketflow.gateway.main import create_app

    application = create_app()
    application.state.ticket_store = ticket_store
    application.state.broadcast_hub = hub
    application.state.orchestrator = orchestrator
    application.state.agent_client = agent_client
    application.state.change_detector = None
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
