"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 tickets 目录、文件监听器、enrichment 配置。
         profile=agent 时额外探测 agent gateway。
"""

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="检查配置文件：core（默认）仅核心检查；agent/full 包含 agent gateway 探测",
    ),
):
    """Readiness 检查

    检查项：
    1. tickets_dir: 目录可访问性与 ticket 数量
    2. watcher: 文件监听器是否运行
    3. enrichment: 自动触发开关、token 是否配置、在途会话数（不影响就绪判定）
    4. agent_gateway: 根据 profile 决定是否探测
    """
    effective_profile = profile or "core"
    state = request.app.state

    checks: dict = {}
    all_ok = True

    # 1. tickets 目录
    try:
        store_health = await state.ticket_store.health_check()
        checks["tickets_dir"] = "ok"
        checks["ticket_count"] = store_health["ticket_count"]
    except Exception as e:
        checks["tickets_dir"] = f"error: {e}"
        all_ok = False

    # 2. 文件监听器
    detector = getattr(state, "change_detector", None)
    if detector is not None and detector.is_watching:
        checks["watcher"] = "running"
    else:
        checks["watcher"] = "stopped"
        all_ok = False

    # 3. enrichment 概况
    orchestrator = state.orchestrator
    agent_client = state.agent_client
    checks["enrichment"] = {
        "enabled": orchestrator.settings.auto_enrich,
        "gateway_url": agent_client.config.gateway_url,
        "has_token": agent_client.config.has_token,
        "active_sessions": orchestrator.active_session_count,
    }

    # 4. agent gateway
    if effective_profile in ("agent", "full"):
        try:
            healthy = await agent_client.health_check()
        except Exception as e:
            log.warning("health_check_error", error=str(e))
            healthy = False
        checks["agent_gateway"] = "ok" if healthy else "unreachable"
        if not healthy:
            all_ok = False
    else:
        checks["agent_gateway"] = "skipped"

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "profile": effective_profile,
            "checks": checks,
        },
    )
