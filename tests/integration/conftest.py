"""集成测试共享 fixture -- 真实文件监听 + mock agent 的完整管线"""

import asyncio
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from ticketflow.agent import AgentClient, AgentConfig, AgentInvocationResult
from ticketflow.core.store import FileTicketStore, create_ticket_store
from ticketflow.gateway.services.broadcast_hub import BroadcastHub
from ticketflow.gateway.services.change_detector import ChangeDetector
from ticketflow.gateway.services.enrichment import EnrichmentOrchestrator
from ticketflow.gateway.services.ticket_sync import TicketSyncService
from ticketflow.gateway.settings import EnrichmentSettings


@dataclass
class Pipeline:
    store: FileTicketStore
    hub: BroadcastHub
    agent: AsyncMock
    orchestrator: EnrichmentOrchestrator
    detector: ChangeDetector


@pytest_asyncio.fixture
async def pipeline(tickets_dir) -> AsyncGenerator[Pipeline, None]:
    """按 lifespan 的顺序手动装配各组件，使用短稳定窗口"""
    store = create_ticket_store(tickets_dir)
    hub = BroadcastHub(store)

    agent = AsyncMock(spec=AgentClient)
    agent.config = AgentConfig(token=SecretStr("tok-int"))
    agent.invoke.return_value = AgentInvocationResult(child_session_key="child-int")
    agent.health_check.return_value = True

    orchestrator = EnrichmentOrchestrator(
        store,
        agent,
        EnrichmentSettings(retry_delay_s=0, reconcile_after_s=3600),
    )
    detector = ChangeDetector(stability_s=0.1, use_polling=True, poll_interval_s=0.05)
    detector.start(tickets_dir)
    sync = TicketSyncService(store, hub, orchestrator)
    sync_task = asyncio.create_task(sync.run(detector.events()))
    # 轮询 observer 完成首次快照
    await asyncio.sleep(0.2)

    yield Pipeline(store, hub, agent, orchestrator, detector)

    await detector.stop()
    await asyncio.wait_for(sync_task, timeout=5)
    await orchestrator.shutdown()


@pytest_asyncio.fixture
async def client(pipeline: Pipeline) -> AsyncGenerator[AsyncClient, None]:
    from ticketflow.gateway.main import create_app

    app = create_app()
    app.state.ticket_store = pipeline.store
    app.state.broadcast_hub = pipeline.hub
    app.state.orchestrator = pipeline.orchestrator
    app.state.agent_client = pipeline.agent
    app.state.change_detector = pipeline.detector

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
