"""Enrichment 路由

POST /api/tickets/{ticket_id}/enrich: 手动触发
POST /api/tickets/{ticket_id}/enrichment/complete: 完成回调
POST /api/tickets/{ticket_id}/enrichment/failed: 失败回调
GET  /api/enrichment/sessions: 在途会话快照（只读）
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from ticketflow.core.parser import TicketParseError
from ticketflow.core.store import TicketNotFoundError

from ..deps import get_orchestrator, get_ticket_store
from ..services.enrichment import EnrichmentInProgressError
from .errors import (
    error_response,
    invalid_ticket_id,
    ticket_not_found,
    ticket_unreadable,
)

router = APIRouter()


class EnrichmentFailureReport(BaseModel):
    """失败回调请求体"""

    error: str = Field(default="Reported failure", min_length=1, description="失败原因")


@router.post("/api/tickets/{ticket_id}/enrich")
async def trigger_enrichment(ticket_id: str, orchestrator=Depends(get_orchestrator)):
    """手动触发 enrichment，跳过资格判定，等待调用结果后返回"""
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    try:
        result = await orchestrator.manual_trigger(ticket_id)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    except TicketParseError as e:
        return ticket_unreadable(ticket_id, e.reason)
    except EnrichmentInProgressError as e:
        return error_response(409, "ENRICHMENT_IN_PROGRESS", str(e))

    if not result.success:
        return error_response(400, "ENRICHMENT_FAILED", result.error or "Enrichment failed")
    return {
        "status": "triggered",
        "ticketId": ticket_id,
        "sessionKey": result.session_key,
    }


@router.post("/api/tickets/{ticket_id}/enrichment/complete")
async def complete_enrichment(
    ticket_id: str,
    store=Depends(get_ticket_store),
    orchestrator=Depends(get_orchestrator),
):
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    try:
        await store.get_ticket(ticket_id)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    except TicketParseError as e:
        return ticket_unreadable(ticket_id, e.reason)

    ticket = await orchestrator.mark_complete(ticket_id)
    if ticket is None:
        return error_response(500, "ENRICHMENT_UPDATE_FAILED", "Failed to record completion")
    return {"ticket": ticket.to_wire()}


@router.post("/api/tickets/{ticket_id}/enrichment/failed")
async def fail_enrichment(
    ticket_id: str,
    report: EnrichmentFailureReport | None = None,
    store=Depends(get_ticket_store),
    orchestrator=Depends(get_orchestrator),
):
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    try:
        await store.get_ticket(ticket_id)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    except TicketParseError as e:
        return ticket_unreadable(ticket_id, e.reason)

    report = report or EnrichmentFailureReport()
    ticket = await orchestrator.mark_failed(ticket_id, report.error)
    if ticket is None:
        return error_response(500, "ENRICHMENT_UPDATE_FAILED", "Failed to record failure")
    return {"ticket": ticket.to_wire()}


@router.get("/api/enrichment/sessions")
async def list_sessions(orchestrator=Depends(get_orchestrator)):
    sessions = orchestrator.sessions_snapshot()
    return {
        "enabled": orchestrator.settings.auto_enrich,
        "count": len(sessions),
        "sessions": [s.to_wire() for s in sessions],
    }
