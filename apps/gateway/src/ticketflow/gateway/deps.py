"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request
from ticketflow.core.store import FileTicketStore

from .services.broadcast_hub import BroadcastHub
from .services.enrichment import EnrichmentOrchestrator


def get_ticket_store(request: Request) -> FileTicketStore:
    """从 app.state 获取 TicketStore 实例"""
    return request.app.state.ticket_store


def get_broadcast_hub(request: Request) -> BroadcastHub:
    """从 app.state 获取 BroadcastHub 实例"""
    return request.app.state.broadcast_hub


def get_orchestrator(request: Request) -> EnrichmentOrchestrator:
    """从 app.state 获取 EnrichmentOrchestrator 实例"""
    return request.app.state.orchestrator
