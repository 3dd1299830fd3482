"""FastAPI 应用主文件

app 创建 + lifespan 管理：
启动时构建 Store、BroadcastHub、AgentClient、EnrichmentOrchestrator、ChangeDetector，
并启动事件分发任务；关闭时按相反顺序释放。
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from ticketflow.agent import AgentClient, load_agent_config
from ticketflow.core.config import get_tickets_dir
from ticketflow.core.store import create_ticket_store

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import enrichment, health, stream, tickets
from .services.broadcast_hub import BroadcastHub
from .services.change_detector import ChangeDetector, ChangeDetectorError
from .services.enrichment import EnrichmentOrchestrator
from .services.ticket_sync import TicketSyncService
from .settings import load_enrichment_settings

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理"""
    # 启动：Store + Hub
    tickets_dir = get_tickets_dir()
    ticket_store = create_ticket_store(tickets_dir)
    app.state.ticket_store = ticket_store
    hub = BroadcastHub(ticket_store)
    app.state.broadcast_hub = hub

    # Enrichment：agent 客户端 + 编排器
    agent_config = load_agent_config()
    agent_client = AgentClient(agent_config)
    app.state.agent_client = agent_client
    settings = load_enrichment_settings()
    orchestrator = EnrichmentOrchestrator(ticket_store, agent_client, settings)
    app.state.orchestrator = orchestrator
    if not agent_config.has_token:
        log.warning("agent_token_missing", message="自动 enrichment 调用将立即失败")

    # 文件监听 + 事件分发
    detector = ChangeDetector()
    try:
        detector.start(tickets_dir)
    except ChangeDetectorError:
        await agent_client.aclose()
        raise
    app.state.change_detector = detector
    sync = TicketSyncService(
        ticket_store,
        hub,
        orchestrator,
        auto_enrich=settings.auto_enrich,
    )
    sync_task = asyncio.create_task(sync.run(detector.events()), name="ticket-sync")

    log.info(
        "gateway_started",
        tickets_dir=str(ticket_store.tickets_dir),
        auto_enrich=settings.auto_enrich,
        agent_gateway=agent_config.gateway_url,
    )

    yield

    # 关闭：先停监听，事件流结束后分发任务自然退出
    await detector.stop()
    try:
        await asyncio.wait_for(sync_task, timeout=5)
    except TimeoutError:
        sync_task.cancel()
        await asyncio.gather(sync_task, return_exceptions=True)
    await orchestrator.shutdown()
    await agent_client.aclose()
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="TicketFlow Gateway",
        version="0.1.0",
        description="基于文件的 ticket 同步与自动 enrichment 服务",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由
    app.include_router(tickets.router, tags=["tickets"])
    app.include_router(enrichment.router, tags=["enrichment"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
