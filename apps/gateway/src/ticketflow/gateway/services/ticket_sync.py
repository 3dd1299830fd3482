"""TicketSyncService -- 文件事件 -> 广播 / enrichment 分发

消费 ChangeDetector 的事件流：
- created: 读取 -> 广播 ticket:created -> 提交给 EnrichmentOrchestrator（后台执行）
- updated: 读取 -> 广播 ticket:updated（全局 + ticket 房间）
- deleted: 广播 ticket:deleted（仅携带 id）
- error:   记录日志
单个事件处理失败只记录日志，不中断消费循环。
"""

from collections.abc import AsyncIterable

import structlog
from ticketflow.core.models import ChangeEvent, ChangeKind, TicketEvent, TicketEventType
from ticketflow.core.parser import TicketParseError, extract_ticket_id
from ticketflow.core.store import TicketNotFoundError, TicketStore

from .broadcast_hub import BroadcastHub
from .enrichment import EnrichmentOrchestrator

log = structlog.get_logger()


class TicketSyncService:
    """把文件变更转换为订阅者事件，并把新建 ticket 交给编排器"""

    def __init__(
        self,
        ticket_store: TicketStore,
        hub: BroadcastHub,
        orchestrator: EnrichmentOrchestrator | None = None,
        auto_enrich: bool = True,
    ) -> None:
        self._store = ticket_store
        self._hub = hub
        self._orchestrator = orchestrator
        self._auto_enrich = auto_enrich

    async def run(self, events: AsyncIterable[ChangeEvent]) -> None:
        """消费事件流直到其结束"""
        log.info("ticket_sync_started", auto_enrich=self._auto_enrich)
        async for event in events:
            try:
                await self.handle(event)
            except Exception as e:
                log.error(
                    "ticket_sync_event_failed",
                    kind=event.kind.value,
                    path=str(event.path),
                    error_type=type(e).__name__,
                    error=str(e),
                )
        log.info("ticket_sync_stopped")

    async def handle(self, event: ChangeEvent) -> None:
        if event.kind == ChangeKind.ERROR:
            log.error("ticket_watch_error", message=event.message)
            return

        ticket_id = extract_ticket_id(event.path)

        if event.kind == ChangeKind.DELETED:
            await self._hub.broadcast_ticket(
                ticket_id,
                TicketEvent(
                    type=TicketEventType.DELETED,
                    ticket_id=ticket_id,
                    payload={"id": ticket_id},
                ),
            )
            return

        try:
            ticket = await self._store.get_ticket(ticket_id)
        except TicketNotFoundError:
            # 稳定窗口之后又被删除，等待后续 deleted 事件
            log.info("ticket_gone_before_read", ticket_id=ticket_id, kind=event.kind.value)
            return
        except TicketParseError as e:
            log.warning("ticket_parse_failed", ticket_id=ticket_id, reason=e.reason)
            return

        if event.kind == ChangeKind.CREATED:
            await self._hub.broadcast(
                TicketEvent(
                    type=TicketEventType.CREATED,
                    ticket_id=ticket_id,
                    payload=ticket.to_wire(),
                )
            )
            if self._auto_enrich and self._orchestrator is not None:
                self._orchestrator.submit_created(ticket_id)
        else:
            await self._hub.broadcast_ticket(
                ticket_id,
                TicketEvent(
                    type=TicketEventType.UPDATED,
                    ticket_id=ticket_id,
                    payload=ticket.to_wire(),
                ),
            )
