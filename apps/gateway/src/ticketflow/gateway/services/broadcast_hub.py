"""BroadcastHub -- 内存中事件广播器

每个订阅者持有一个 asyncio.Queue：
- 连接时先收到一次完整的 tickets:init 快照
- 全局事件投递给所有订阅者
- 针对单个 ticket 的事件同时投递给全局集合和该 ticket 的房间
  （同时在两处的订阅者会收到两次，去重由客户端负责）
投递是 fire-and-forget：队列写满视为断开，不重试、不补发。
"""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator

import structlog
from ticketflow.core.config import SUBSCRIBER_QUEUE_MAXSIZE
from ticketflow.core.models import TicketEvent, TicketEventType
from ticketflow.core.store import TicketStore
from ulid import ULID

log = structlog.get_logger()


class Subscriber:
    """单个已连接客户端"""

    def __init__(self, queue_maxsize: int) -> None:
        self.subscriber_id = str(ULID())
        # None 为关闭哨兵，多留一个位置
        self.queue: asyncio.Queue[TicketEvent | None] = asyncio.Queue(maxsize=queue_maxsize + 1)
        self._limit = queue_maxsize
        self.rooms: set[str] = set()
        self.connected = True
        # 快照送达前到达的事件先暂存，保证 init 总是第一条
        self._backlog: list[TicketEvent] | None = []

    def offer(self, event: TicketEvent) -> bool:
        """投递事件，队列已满返回 False"""
        if not self.connected:
            return True
        if self._backlog is not None:
            self._backlog.append(event)
            return True
        if self.queue.qsize() >= self._limit:
            return False
        self.queue.put_nowait(event)
        return True

    def open_with(self, snapshot: TicketEvent) -> bool:
        backlog, self._backlog = self._backlog or [], None
        return all(self.offer(e) for e in [snapshot, *backlog])

    def close(self) -> None:
        """丢弃未读事件并唤醒读取方"""
        if not self.connected:
            return
        self.connected = False
        self._backlog = None
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def next_event(self) -> TicketEvent | None:
        """下一条事件；关闭后返回 None"""
        if not self.connected and self.queue.empty():
            return None
        return await self.queue.get()

    async def events(self) -> AsyncIterator[TicketEvent]:
        while (event := await self.next_event()) is not None:
            yield event


class BroadcastHub:
    """ticket 事件广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(
        self,
        ticket_store: TicketStore,
        queue_maxsize: int = SUBSCRIBER_QUEUE_MAXSIZE,
    ) -> None:
        self._store = ticket_store
        self._queue_maxsize = queue_maxsize
        self._subscribers: dict[str, Subscriber] = {}
        # ticket_id -> set of subscriber_id
        self._rooms: dict[str, set[str]] = defaultdict(set)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def connect(self) -> Subscriber:
        """注册新订阅者并推送当前完整 ticket 列表

        快照读取失败时推送 error 事件，订阅者仍保持连接。
        """
        subscriber = Subscriber(self._queue_maxsize)
        self._subscribers[subscriber.subscriber_id] = subscriber

        try:
            tickets = await self._store.list_tickets()
            snapshot = TicketEvent(
                type=TicketEventType.INIT,
                payload=[t.to_wire() for t in tickets],
            )
        except Exception as e:
            log.error(
                "initial_snapshot_failed",
                subscriber_id=subscriber.subscriber_id,
                error=str(e),
            )
            snapshot = TicketEvent(
                type=TicketEventType.ERROR,
                payload={"message": "Failed to load tickets"},
            )

        if not subscriber.open_with(snapshot):
            await self.disconnect(subscriber)
        log.info(
            "subscriber_connected",
            subscriber_id=subscriber.subscriber_id,
            total=len(self._subscribers),
        )
        return subscriber

    async def disconnect(self, subscriber: Subscriber) -> None:
        """移除订阅者及其所有房间成员关系"""
        subscriber.close()
        if self._subscribers.pop(subscriber.subscriber_id, None) is None:
            return
        for ticket_id in list(subscriber.rooms):
            self._leave(subscriber, ticket_id)
        log.info(
            "subscriber_disconnected",
            subscriber_id=subscriber.subscriber_id,
            remaining=len(self._subscribers),
        )

    async def subscribe_ticket(self, subscriber: Subscriber, ticket_id: str) -> None:
        """加入指定 ticket 的房间"""
        if subscriber.subscriber_id not in self._subscribers:
            return
        self._rooms[ticket_id].add(subscriber.subscriber_id)
        subscriber.rooms.add(ticket_id)
        log.debug("ticket_subscribed", subscriber_id=subscriber.subscriber_id, ticket_id=ticket_id)

    async def unsubscribe_ticket(self, subscriber: Subscriber, ticket_id: str) -> None:
        """离开指定 ticket 的房间"""
        self._leave(subscriber, ticket_id)
        log.debug(
            "ticket_unsubscribed",
            subscriber_id=subscriber.subscriber_id,
            ticket_id=ticket_id,
        )

    def room_members(self, ticket_id: str) -> set[str]:
        return set(self._rooms.get(ticket_id, set()))

    async def broadcast(self, event: TicketEvent) -> None:
        """向所有订阅者广播"""
        self._deliver(list(self._subscribers.values()), event)

    async def broadcast_ticket(self, ticket_id: str, event: TicketEvent) -> None:
        """向全局集合和该 ticket 房间分别投递"""
        targets = list(self._subscribers.values())
        targets.extend(
            self._subscribers[sid]
            for sid in self._rooms.get(ticket_id, set())
            if sid in self._subscribers
        )
        self._deliver(targets, event)

    def _deliver(self, targets: list[Subscriber], event: TicketEvent) -> None:
        dead = [s for s in targets if not s.offer(event)]

        # 清理已满的队列
        for subscriber in dead:
            if self._subscribers.pop(subscriber.subscriber_id, None) is None:
                continue
            subscriber.close()
            for ticket_id in list(subscriber.rooms):
                self._leave(subscriber, ticket_id)
            log.warning("subscriber_dropped_queue_full", subscriber_id=subscriber.subscriber_id)

    def _leave(self, subscriber: Subscriber, ticket_id: str) -> None:
        subscriber.rooms.discard(ticket_id)
        members = self._rooms.get(ticket_id)
        if members is None:
            return
        members.discard(subscriber.subscriber_id)
        if not members:
            del self._rooms[ticket_id]
