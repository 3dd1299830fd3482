"""实时推送路由

GET /api/stream/tickets: SSE 全局事件流；?ticket_id= 同时加入该 ticket 的房间
WS  /ws/tickets: WebSocket；入站 {"action": "subscribe"|"unsubscribe", "ticketId": ...}

两种通道连接后首先收到 tickets:init 快照。
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sse_starlette.sse import EventSourceResponse
from ticketflow.core.config import SSE_HEARTBEAT_INTERVAL
from ticketflow.core.models import TicketEvent, TicketEventType

from ..deps import get_broadcast_hub
from ..services.broadcast_hub import BroadcastHub, Subscriber
from .errors import invalid_ticket_id

log = structlog.get_logger()

router = APIRouter()

_ACTIONS = {"subscribe", "unsubscribe"}


def _event_to_sse(event: TicketEvent) -> dict:
    return {
        "id": event.event_id,
        "event": event.type.value,
        "data": json.dumps(event.to_wire(), ensure_ascii=False),
    }


@router.get("/api/stream/tickets")
async def stream_tickets(
    ticket_id: str | None = Query(default=None, description="同时订阅该 ticket 的房间"),
    hub=Depends(get_broadcast_hub),
):
    """SSE 事件流端点

    1. 推送 tickets:init 快照
    2. 实时推送 created / updated / deleted
    3. 心跳保活
    """
    if ticket_id is not None and (resp := invalid_ticket_id(ticket_id)) is not None:
        return resp

    async def event_generator():
        subscriber = await hub.connect()
        if ticket_id is not None:
            await hub.subscribe_ticket(subscriber, ticket_id)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(
                        subscriber.next_event(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                if event is None:
                    return
                yield _event_to_sse(event)
        finally:
            await hub.disconnect(subscriber)

    return EventSourceResponse(event_generator())


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    async for event in subscriber.events():
        await websocket.send_json(event.to_wire())


def _reject(subscriber: Subscriber, message: str) -> None:
    subscriber.offer(TicketEvent(type=TicketEventType.ERROR, payload={"message": message}))


@router.websocket("/ws/tickets")
async def ticket_socket(websocket: WebSocket):
    """WebSocket 通道：出站与 SSE 相同的事件，入站房间订阅请求"""
    hub: BroadcastHub = websocket.app.state.broadcast_hub
    await websocket.accept()
    subscriber = await hub.connect()
    sender = asyncio.create_task(_pump(websocket, subscriber))
    log.info("websocket_connected", subscriber_id=subscriber.subscriber_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                _reject(subscriber, "Invalid JSON message")
                continue

            action = message.get("action") if isinstance(message, dict) else None
            ticket_id = message.get("ticketId") if isinstance(message, dict) else None
            if action not in _ACTIONS or not isinstance(ticket_id, str):
                _reject(subscriber, "Expected {action: subscribe|unsubscribe, ticketId}")
                continue
            if invalid_ticket_id(ticket_id) is not None:
                _reject(subscriber, f"Invalid ticket ID format: {ticket_id}")
                continue

            if action == "subscribe":
                await hub.subscribe_ticket(subscriber, ticket_id)
            else:
                await hub.unsubscribe_ticket(subscriber, ticket_id)
    except WebSocketDisconnect:
        log.info("websocket_disconnected", subscriber_id=subscriber.subscriber_id)
    finally:
        await hub.disconnect(subscriber)
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
