"""EnrichmentOrchestrator -- 新建 ticket 的自动 enrichment 状态机

状态流转（按 ticket）：
    Idle -> Pending -> Active(in-progress, 持有 Session) -> Complete / Failed
手动触发可从任意非活跃状态进入 Pending，受同一个在途保护约束。

Session 是进程内"是否正在处理"的唯一权威判定，只由本编排器修改；
每次对 Session 的检查-设置都在该 ticket 的锁内完成。
监听器只能看到"文件变了"，看不到"作业完成"，
因此 Active 状态在超时后用质量分对账，决定 complete 还是 failed。
"""

import asyncio
import time
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field
from ticketflow.agent import AgentClient, AgentError, build_enrichment_task
from ticketflow.core.models import (
    EnrichmentState,
    EnrichmentStatus,
    Ticket,
    TicketUpdate,
)
from ticketflow.core.models.enums import INITIAL_STATUS
from ticketflow.core.parser import TicketParseError
from ticketflow.core.store import TicketNotFoundError, TicketStore

from ..settings import EnrichmentSettings

log = structlog.get_logger()

# 正文中表示"已有实现细节"的标记
IMPLEMENTATION_MARKERS = ("Implementation Details", "**Implementation")

# 质量分规则：(分值, 可接受的写法)
_SECTION_SCORES: tuple[tuple[int, tuple[str, ...]], ...] = (
    (15, ("**Tasks:**", "## Tasks")),
    (20, ("**Acceptance Criteria:**", "## Acceptance")),
    (15, ("**Dependencies:**", "## Dependencies")),
    (10, ("**Success Metrics:**", "## Success")),
    (10, ("**Implementation", "## Implementation")),
)
ESTIMATE_SCORE = 20
LONG_BODY_SCORE = 10
LONG_BODY_THRESHOLD = 2000

SESSION_TIMEOUT_REASON = "session timeout"

_TERMINAL_STATES = (EnrichmentState.COMPLETE, EnrichmentState.FAILED)


class EnrichmentInProgressError(Exception):
    """ticket 已有在途 enrichment"""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Enrichment already in progress for {ticket_id}")
        self.ticket_id = ticket_id


class Session(BaseModel):
    """进程内在途 enrichment 会话"""

    ticket_id: str
    session_key: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_wire(self) -> dict:
        return {
            "ticketId": self.ticket_id,
            "sessionKey": self.session_key,
            "startedAt": self.started_at.isoformat(),
        }


class EnrichmentResult(BaseModel):
    """一次触发的结果"""

    success: bool
    session_key: str | None = None
    child_session_key: str | None = None
    error: str | None = None


class SessionRegistry:
    """ticket_id -> Session 的映射，附带按 key 划分的临界区

    生命周期与所属编排器一致；snapshot() 返回只读副本供监控使用。
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, ticket_id: str) -> asyncio.Lock:
        """获取 ticket 级别锁，序列化同一 ticket 的检查-设置"""
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[ticket_id] = lock
        return lock

    def get(self, ticket_id: str) -> Session | None:
        return self._sessions.get(ticket_id)

    def __contains__(self, ticket_id: str) -> bool:
        return ticket_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def put(self, session: Session) -> None:
        self._sessions[session.ticket_id] = session

    def pop(self, ticket_id: str, session_key: str | None = None) -> Session | None:
        """移除会话；指定 session_key 时仅在 key 匹配时移除"""
        session = self._sessions.get(ticket_id)
        if session is None:
            return None
        if session_key is not None and session.session_key != session_key:
            return None
        return self._sessions.pop(ticket_id)

    def snapshot(self) -> list[Session]:
        return [s.model_copy() for s in self._sessions.values()]


def score_ticket(ticket: Ticket) -> int:
    """0-100 的加性质量分，仅用于超时对账

    纯函数：只依赖正文与 estimate。
    """
    body = ticket.body or ""
    score = ESTIMATE_SCORE if ticket.estimate else 0
    for points, markers in _SECTION_SCORES:
        if any(marker in body for marker in markers):
            score += points
    if len(body) > LONG_BODY_THRESHOLD:
        score += LONG_BODY_SCORE
    return score


def evaluate_eligibility(
    ticket: Ticket,
    settings: EnrichmentSettings,
    now: datetime | None = None,
    in_flight: bool = False,
) -> str | None:
    """评估 ticket 是否需要自动 enrichment

    Args:
        ticket: 刚创建的 ticket
        settings: 阈值配置
        now: 当前时间（测试注入）
        in_flight: 本进程是否已持有该 ticket 的会话或触发

    Returns:
        跳过原因；None 表示符合条件
    """
    now = now or datetime.now(UTC)
    enrichment = ticket.enrichment

    if enrichment is not None and enrichment.is_active:
        return f"already {enrichment.status.value}"
    if in_flight:
        return "active local session"

    if ticket.status != INITIAL_STATUS and ticket.estimate is not None:
        return "already triaged"

    body = ticket.body or ""
    has_details = any(marker in body for marker in IMPLEMENTATION_MARKERS)
    if len(body) >= settings.content_length_threshold and has_details:
        return "content looks complete"

    age_s = (now - ticket.created_at).total_seconds()
    if age_s >= settings.max_age_s:
        return "too old"

    if enrichment is not None and enrichment.completed_at is not None:
        since_completion = (now - enrichment.completed_at).total_seconds()
        if since_completion < settings.suppression_s:
            return "recently enriched"

    return None


class EnrichmentOrchestrator:
    """Enrichment 编排器"""

    def __init__(
        self,
        ticket_store: TicketStore,
        agent_client: AgentClient,
        settings: EnrichmentSettings | None = None,
    ) -> None:
        self._store = ticket_store
        self._agent = agent_client
        self._settings = settings or EnrichmentSettings()
        self._sessions = SessionRegistry()
        # 已通过在途检查、尚未拿到 Session 的 ticket
        self._claims: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def settings(self) -> EnrichmentSettings:
        return self._settings

    @property
    def active_session_count(self) -> int:
        return len(self._sessions)

    def sessions_snapshot(self) -> list[Session]:
        return self._sessions.snapshot()

    def has_session(self, ticket_id: str) -> bool:
        return ticket_id in self._sessions

    def should_enrich(self, ticket: Ticket, now: datetime | None = None) -> bool:
        """资格判定（仅对 created 事件调用）"""
        reason = evaluate_eligibility(
            ticket,
            self._settings,
            now=now,
            in_flight=self._in_flight(ticket.id),
        )
        if reason is not None:
            log.info("enrichment_skipped", ticket_id=ticket.id, reason=reason)
            return False
        log.info(
            "enrichment_eligible",
            ticket_id=ticket.id,
            status=ticket.status.value,
            estimate=ticket.estimate,
            body_length=len(ticket.body),
        )
        return True

    def submit_created(self, ticket_id: str) -> asyncio.Task | None:
        """在后台处理 created 事件，不阻塞事件分发"""
        if self._closed:
            return None
        return self._spawn(self.handle_created(ticket_id), name=f"enrich-{ticket_id}")

    async def handle_created(self, ticket_id: str) -> EnrichmentResult | None:
        """读取新 ticket，符合条件时触发 enrichment"""
        try:
            ticket = await self._store.get_ticket(ticket_id)
        except (TicketNotFoundError, TicketParseError) as e:
            log.warning("enrichment_ticket_unreadable", ticket_id=ticket_id, error=str(e))
            return None

        async with self._sessions.lock(ticket_id):
            if not self.should_enrich(ticket):
                return None
            self._claims.add(ticket_id)

        try:
            return await self._trigger(ticket)
        finally:
            self._claims.discard(ticket_id)

    async def manual_trigger(self, ticket_id: str) -> EnrichmentResult:
        """手动触发，跳过资格判定但仍受在途保护

        Raises:
            TicketNotFoundError: ticket 不存在
            EnrichmentInProgressError: 已有在途 enrichment
        """
        ticket = await self._store.get_ticket(ticket_id)

        async with self._sessions.lock(ticket_id):
            active = ticket.enrichment is not None and ticket.enrichment.is_active
            if active or self._in_flight(ticket_id):
                raise EnrichmentInProgressError(ticket_id)
            self._claims.add(ticket_id)

        log.info("enrichment_manual_trigger", ticket_id=ticket_id)
        try:
            return await self._trigger(ticket)
        finally:
            self._claims.discard(ticket_id)

    async def mark_complete(self, ticket_id: str) -> Ticket | None:
        """完成回调：移除 Session 并写入 complete"""
        async with self._sessions.lock(ticket_id):
            self._sessions.pop(ticket_id)
            return await self._finish(ticket_id, EnrichmentState.COMPLETE)

    async def mark_failed(self, ticket_id: str, error: str) -> Ticket | None:
        """失败回调：移除 Session 并写入 failed"""
        async with self._sessions.lock(ticket_id):
            self._sessions.pop(ticket_id)
            return await self._finish(ticket_id, EnrichmentState.FAILED, error)

    async def reconcile(self, ticket_id: str, session_key: str) -> EnrichmentState | None:
        """超时对账

        仅当 Session 仍存在且 key 一致时执行；结束时无论结果如何都移除该 Session。

        Returns:
            对账写入的终态；未写入返回 None
        """
        async with self._sessions.lock(ticket_id):
            session = self._sessions.get(ticket_id)
            if session is None or session.session_key != session_key:
                log.debug("reconcile_stale_session", ticket_id=ticket_id, session_key=session_key)
                return None

            log.info("enrichment_session_timeout", ticket_id=ticket_id, session_key=session_key)
            outcome = None
            try:
                ticket = await self._store.get_ticket(ticket_id)
                enrichment = ticket.enrichment
                if enrichment is not None and enrichment.status == EnrichmentState.IN_PROGRESS:
                    score = score_ticket(ticket)
                    if score >= self._settings.complete_score_threshold:
                        log.info("enrichment_inferred_complete", ticket_id=ticket_id, score=score)
                        outcome = EnrichmentState.COMPLETE
                        await self._finish(ticket_id, outcome)
                    else:
                        log.info("enrichment_inferred_failed", ticket_id=ticket_id, score=score)
                        outcome = EnrichmentState.FAILED
                        await self._finish(ticket_id, outcome, SESSION_TIMEOUT_REASON)
            except TicketNotFoundError:
                log.info("reconcile_ticket_gone", ticket_id=ticket_id)
            except Exception as e:
                log.error(
                    "reconcile_failed",
                    ticket_id=ticket_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
            finally:
                self._sessions.pop(ticket_id, session_key)
            return outcome

    async def shutdown(self) -> None:
        """取消所有后台任务与对账计时器"""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("enrichment_orchestrator_stopped", cancelled=len(tasks))

    async def _trigger(self, ticket: Ticket) -> EnrichmentResult:
        """pending -> 调用（顺序重试）-> in-progress 或 failed"""
        ticket_id = ticket.id
        previous = ticket.enrichment
        attempts = ((previous.attempts if previous else None) or 0) + 1

        async with self._sessions.lock(ticket_id):
            pending = await self._write_status(
                ticket_id,
                status=EnrichmentState.PENDING,
                triggered_at=datetime.now(UTC),
                attempts=attempts,
                last_error=None,
            )

        session_key = f"enrich-{ticket_id}-{int(time.time() * 1000)}"
        task = build_enrichment_task(ticket, self._store.tickets_dir)
        max_retries = self._settings.max_retries
        last_error = ""

        for attempt in range(1, max_retries + 1):
            log.info(
                "enrichment_attempt",
                ticket_id=ticket_id,
                attempt=attempt,
                max_retries=max_retries,
            )
            try:
                result = await self._agent.invoke(task)
            except AgentError as e:
                last_error = str(e)
                log.warning(
                    "enrichment_attempt_failed",
                    ticket_id=ticket_id,
                    attempt=attempt,
                    error_type=type(e).__name__,
                    error=last_error,
                )
                if not e.recoverable:
                    break
                if attempt < max_retries:
                    await asyncio.sleep(self._settings.retry_delay_s)
                continue

            # Session 登记与 in-progress 写入不可被回调隔开
            async with self._sessions.lock(ticket_id):
                current = await self._current_state(ticket_id)
                if pending is not None and current in _TERMINAL_STATES:
                    # 调用返回前回调已写入终态
                    log.info(
                        "enrichment_resolved_before_ack",
                        ticket_id=ticket_id,
                        status=current.value,
                    )
                    return EnrichmentResult(
                        success=True,
                        session_key=session_key,
                        child_session_key=result.child_session_key,
                    )
                self._sessions.put(Session(ticket_id=ticket_id, session_key=session_key))
                await self._write_status(
                    ticket_id,
                    status=EnrichmentState.IN_PROGRESS,
                    triggered_at=datetime.now(UTC),
                    session_key=session_key,
                    attempts=attempts,
                )
                self._schedule_reconcile(ticket_id, session_key)
            log.info(
                "enrichment_started",
                ticket_id=ticket_id,
                session_key=session_key,
                child_session_key=result.child_session_key,
            )
            return EnrichmentResult(
                success=True,
                session_key=session_key,
                child_session_key=result.child_session_key,
            )

        log.error("enrichment_retries_exhausted", ticket_id=ticket_id, error=last_error)
        async with self._sessions.lock(ticket_id):
            await self._write_status(
                ticket_id,
                status=EnrichmentState.FAILED,
                last_error=last_error,
                attempts=attempts,
            )
        return EnrichmentResult(success=False, error=last_error)

    async def _current_state(self, ticket_id: str) -> EnrichmentState | None:
        try:
            ticket = await self._store.get_ticket(ticket_id)
        except (TicketNotFoundError, TicketParseError):
            return None
        return ticket.enrichment.status if ticket.enrichment is not None else None

    async def _finish(
        self,
        ticket_id: str,
        state: EnrichmentState,
        error: str | None = None,
    ) -> Ticket | None:
        if state == EnrichmentState.COMPLETE:
            return await self._write_status(
                ticket_id, status=state, completed_at=datetime.now(UTC)
            )
        return await self._write_status(ticket_id, status=state, last_error=error)

    async def _write_status(self, ticket_id: str, **changes) -> Ticket | None:
        """在现有 EnrichmentStatus 上合并写入

        后台路径的写入失败只记录日志，返回 None。
        """
        try:
            ticket = await self._store.get_ticket(ticket_id)
            if ticket.enrichment is not None:
                enrichment = ticket.enrichment.model_copy(update=changes)
            else:
                enrichment = EnrichmentStatus(**changes)
            updated = await self._store.update_ticket(
                ticket_id, TicketUpdate(enrichment=enrichment)
            )
        except Exception as e:
            log.error(
                "enrichment_status_write_failed",
                ticket_id=ticket_id,
                status=str(changes.get("status")),
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
        log.info("enrichment_status_updated", ticket_id=ticket_id, status=enrichment.status.value)
        return updated

    def _schedule_reconcile(self, ticket_id: str, session_key: str) -> None:
        if self._closed:
            return
        self._spawn(
            self._reconcile_later(ticket_id, session_key),
            name=f"reconcile-{ticket_id}",
        )

    async def _reconcile_later(self, ticket_id: str, session_key: str) -> None:
        await asyncio.sleep(self._settings.reconcile_after_s)
        await self.reconcile(ticket_id, session_key)

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "enrichment_task_failed",
                task=task.get_name(),
                error_type=type(exc).__name__,
                error=str(exc),
            )

    def _in_flight(self, ticket_id: str) -> bool:
        return ticket_id in self._sessions or ticket_id in self._claims

