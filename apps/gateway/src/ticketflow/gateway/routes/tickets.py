"""Ticket CRUD 路由

GET    /api/tickets: 列表，支持字段过滤与排序
GET    /api/tickets/{ticket_id}: 详情
POST   /api/tickets: 创建（201）
PATCH  /api/tickets/{ticket_id}: 部分更新
DELETE /api/tickets/{ticket_id}: 删除（204）

写入落盘后由文件监听器产生广播事件，路由本身不直接广播。
"""

from fastapi import APIRouter, Depends, Query
from starlette.responses import Response
from ticketflow.core.models import (
    Priority,
    SortField,
    SortOrder,
    TicketCreate,
    TicketQuery,
    TicketStatus,
    TicketUpdate,
)
from ticketflow.core.parser import TicketParseError
from ticketflow.core.store import TicketNotFoundError

from ..deps import get_ticket_store
from .errors import (
    error_response,
    invalid_ticket_id,
    ticket_not_found,
    ticket_unreadable,
)

router = APIRouter()


@router.get("/api/tickets")
async def list_tickets(
    status: TicketStatus | None = Query(default=None, description="按状态筛选"),
    priority: Priority | None = Query(default=None, description="按优先级筛选"),
    project: str | None = Query(default=None, description="按项目筛选"),
    assignee: str | None = Query(default=None, description="按负责人筛选"),
    sort: SortField = Query(default=SortField.ID, description="排序字段"),
    order: SortOrder = Query(default=SortOrder.ASC, description="排序方向"),
    store=Depends(get_ticket_store),
):
    """查询 ticket 列表；无法解析的文件被跳过"""
    tickets = await store.list_tickets(
        TicketQuery(
            status=status,
            priority=priority,
            project=project,
            assignee=assignee,
            sort=sort,
            order=order,
        )
    )
    return {"tickets": [t.to_wire() for t in tickets], "count": len(tickets)}


@router.get("/api/tickets/{ticket_id}")
async def get_ticket(ticket_id: str, store=Depends(get_ticket_store)):
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    try:
        ticket = await store.get_ticket(ticket_id)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    except TicketParseError as e:
        return ticket_unreadable(ticket_id, e.reason)
    return {"ticket": ticket.to_wire()}


@router.post("/api/tickets", status_code=201)
async def create_ticket(data: TicketCreate, store=Depends(get_ticket_store)):
    ticket = await store.create_ticket(data)
    return {"ticket": ticket.to_wire()}


@router.patch("/api/tickets/{ticket_id}")
async def update_ticket(
    ticket_id: str,
    changes: TicketUpdate,
    store=Depends(get_ticket_store),
):
    """部分更新；enrichment 字段只由编排器维护，不接受外部写入"""
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    if "enrichment" in changes.model_fields_set:
        return error_response(
            400,
            "ENRICHMENT_READ_ONLY",
            "Enrichment status is managed by the server",
        )
    try:
        ticket = await store.update_ticket(ticket_id, changes)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    except TicketParseError as e:
        return ticket_unreadable(ticket_id, e.reason)
    return {"ticket": ticket.to_wire()}


@router.delete("/api/tickets/{ticket_id}", status_code=204)
async def delete_ticket(ticket_id: str, store=Depends(get_ticket_store)):
    if (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp
    try:
        await store.delete_ticket(ticket_id)
    except TicketNotFoundError:
        return ticket_not_found(ticket_id)
    return Response(status_code=204)
