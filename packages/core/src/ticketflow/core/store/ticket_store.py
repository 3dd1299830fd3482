"""TicketStore 文件实现 -- 每个 ticket 一个 markdown 文件

目录即真相：list/get 每次都重新读取磁盘。
Store 自身不做记录级加锁，读-改-写由调用方按 best-effort 处理。
写入先落到同目录临时文件再原子替换，读者不会看到写了一半的文件。
文件 I/O 通过 asyncio.to_thread 执行，不阻塞事件循环。
"""

import asyncio
import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog

from ..models import (
    PRIORITY_ORDER,
    SortField,
    SortOrder,
    Ticket,
    TicketCreate,
    TicketQuery,
    TicketUpdate,
)
from ..parser import (
    TicketParseError,
    is_ticket_filename,
    next_ticket_id,
    parse_ticket,
    serialize_ticket,
    ticket_filename,
)

log = structlog.get_logger()

# mkstemp 默认 0600；新建 ticket 文件使用常规权限
_NEW_FILE_MODE = 0o644


class TicketNotFoundError(Exception):
    """指定 ID 的 ticket 不存在"""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class TicketStoreError(Exception):
    """Store 层不可恢复错误（如 ID 分配重试耗尽、目录不可访问）"""


# 显式传入 null 也不能清空的字段
_REQUIRED_FIELDS = {"title", "status", "priority", "project"}

_SORT_KEYS = {
    SortField.ID: lambda t: t.number,
    SortField.PRIORITY: lambda t: PRIORITY_ORDER[t.priority],
    SortField.CREATED_AT: lambda t: t.created_at,
    SortField.UPDATED_AT: lambda t: t.updated_at,
}


def sort_tickets(
    tickets: list[Ticket],
    sort: SortField = SortField.ID,
    order: SortOrder = SortOrder.ASC,
) -> list[Ticket]:
    """稳定排序；desc 仅翻转比较方向，相等元素保持原有相对顺序"""
    return sorted(tickets, key=_SORT_KEYS[sort], reverse=order == SortOrder.DESC)


def filter_tickets(tickets: list[Ticket], query: TicketQuery) -> list[Ticket]:
    """字段相等过滤，多个条件取合取"""
    conditions = {
        field: value
        for field, value in (
            ("status", query.status),
            ("priority", query.priority),
            ("project", query.project),
            ("assignee", query.assignee),
        )
        if value is not None
    }
    return [
        t for t in tickets
        if all(getattr(t, field) == value for field, value in conditions.items())
    ]


class FileTicketStore:
    """TicketStore 的文件目录实现"""

    _max_create_retries = 3

    def __init__(self, tickets_dir: str | Path) -> None:
        self._dir = Path(tickets_dir)
        self._create_lock = asyncio.Lock()

    @property
    def tickets_dir(self) -> Path:
        return self._dir

    def path_for(self, ticket_id: str) -> Path:
        return self._dir / ticket_filename(ticket_id)

    async def list_ticket_files(self) -> list[Path]:
        """列出目录中所有符合命名约定的文件（按文件名排序）"""
        names = await asyncio.to_thread(lambda: sorted(p.name for p in self._dir.iterdir()))
        return [self._dir / name for name in names if is_ticket_filename(name)]

    async def list_tickets(self, query: TicketQuery | None = None) -> list[Ticket]:
        """读取全部 ticket 后过滤、排序

        单个文件解析失败只记录日志并跳过，不影响整体结果。
        """
        query = query or TicketQuery()
        tickets: list[Ticket] = []
        for path in await self.list_ticket_files():
            try:
                content = await asyncio.to_thread(path.read_bytes)
                tickets.append(parse_ticket(path, content))
            except TicketParseError as e:
                log.warning("ticket_parse_failed", file=path.name, reason=e.reason)
            except FileNotFoundError:
                # 列目录与读取之间被删除
                log.debug("ticket_vanished_during_list", file=path.name)

        return sort_tickets(filter_tickets(tickets, query), query.sort, query.order)

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """根据 ID 读取 ticket

        Raises:
            TicketNotFoundError: 文件不存在
            TicketParseError: 文件格式错误
        """
        path = self.path_for(ticket_id)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise TicketNotFoundError(ticket_id) from e
        return parse_ticket(path, content)

    async def create_ticket(self, data: TicketCreate) -> Ticket:
        """创建 ticket：ID = 当前目录最大编号 + 1

        进程内创建经由锁串行化；使用独占创建写入，若其他写者抢先占用同名文件，
        重新计算 ID 后重试。
        """
        async with self._create_lock:
            for attempt in range(1, self._max_create_retries + 1):
                existing = [p.stem for p in await self.list_ticket_files()]
                ticket_id = next_ticket_id(existing)
                now = datetime.now(UTC)
                ticket = Ticket(
                    id=ticket_id,
                    title=data.title,
                    status=data.status,
                    priority=data.priority,
                    project=data.project,
                    assignee=data.assignee,
                    estimate=data.estimate,
                    created_at=now,
                    updated_at=now,
                    body=data.body or "",
                    file_path=self.path_for(ticket_id),
                )
                try:
                    await asyncio.to_thread(
                        self._write, ticket.file_path, serialize_ticket(ticket), True
                    )
                except FileExistsError:
                    log.warning(
                        "ticket_id_conflict_retry",
                        ticket_id=ticket_id,
                        attempt=attempt,
                    )
                    continue
                log.info("ticket_created", ticket_id=ticket_id)
                return ticket

        raise TicketStoreError("failed to allocate ticket id after retries")

    async def update_ticket(self, ticket_id: str, changes: TicketUpdate) -> Ticket:
        """部分更新：显式提供的字段覆盖原值，ID 不可变

        updated_at 无条件刷新且严格大于旧值（即使没有可见字段变化），
        EnrichmentOrchestrator 以时间戳推进作为活跃信号。

        Raises:
            TicketNotFoundError: ticket 不存在
        """
        existing = await self.get_ticket(ticket_id)
        updates = {
            field: getattr(changes, field)
            for field in changes.model_fields_set
            if getattr(changes, field) is not None or field not in _REQUIRED_FIELDS
        }
        now = datetime.now(UTC)
        if now <= existing.updated_at:
            now = existing.updated_at + timedelta(microseconds=1)

        updated = existing.model_copy(
            update={
                **updates,
                "id": existing.id,
                "updated_at": now,
                "file_path": existing.file_path,
            }
        )
        await asyncio.to_thread(self._write, existing.file_path, serialize_ticket(updated))
        return updated

    async def delete_ticket(self, ticket_id: str) -> None:
        """删除 ticket 文件

        Raises:
            TicketNotFoundError: ticket 不存在
        """
        try:
            await asyncio.to_thread(self.path_for(ticket_id).unlink)
        except FileNotFoundError as e:
            raise TicketNotFoundError(ticket_id) from e
        log.info("ticket_deleted", ticket_id=ticket_id)

    async def health_check(self) -> dict:
        """检查 tickets 目录可访问性"""
        try:
            count = len(await self.list_ticket_files())
        except OSError as e:
            raise TicketStoreError(f"Tickets directory not accessible: {self._dir}") from e
        return {"tickets_dir": str(self._dir), "ticket_count": count}

    @staticmethod
    def _write(path: Path, content: str, exclusive: bool = False) -> None:
        """写临时文件后原子地放到目标路径

        临时文件以 "." 开头，不符合 ticket 命名约定，监听器与列表都会忽略。
        exclusive=True 时用硬链接落位，目标已存在则抛出 FileExistsError。
        """
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            try:
                file_mode = path.stat().st_mode & 0o777
            except FileNotFoundError:
                file_mode = _NEW_FILE_MODE
            os.chmod(tmp, file_mode)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if exclusive:
                os.link(tmp, path)
            else:
                os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)
