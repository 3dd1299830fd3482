"""ChangeDetector -- ticket 目录文件监听

基于 watchdog 非递归监听单个扁平目录，只关注 TICK-<编号>.md 文件。
底层事件在 observer 线程产生，通过 call_soon_threadsafe 转交事件循环；
同一路径的事件在稳定窗口内合并，窗口内无新写入才对外发出，
避免对写了一半的文件发出 created/updated。
以 rename 覆盖已存在的 ticket 文件报告为 updated。

对外契约是一个事件流（asyncio.Queue），不是回调注册：
    detector.start(path)
    async for event in detector.events(): ...
    await detector.stop()
"""

import asyncio
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path

import structlog
from ticketflow.core.config import (
    WATCH_POLL_INTERVAL_MS,
    WATCH_STABILITY_MS,
    WATCH_USE_POLLING,
)
from ticketflow.core.models import ChangeEvent, ChangeKind
from ticketflow.core.parser import is_ticket_filename
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

log = structlog.get_logger()


class ChangeDetectorError(Exception):
    """监听建立失败（目录不存在、句柄无法创建等），不重试"""


@dataclass
class _PendingChange:
    kind: ChangeKind
    handle: asyncio.TimerHandle


# (窗口内首个事件, 新事件) -> 合并后的事件；None 表示抵消（文件出现又消失）
_MERGE: dict[tuple[ChangeKind, ChangeKind], ChangeKind | None] = {
    (ChangeKind.CREATED, ChangeKind.UPDATED): ChangeKind.CREATED,
    (ChangeKind.CREATED, ChangeKind.DELETED): None,
    (ChangeKind.UPDATED, ChangeKind.CREATED): ChangeKind.UPDATED,
    (ChangeKind.UPDATED, ChangeKind.DELETED): ChangeKind.DELETED,
    (ChangeKind.DELETED, ChangeKind.CREATED): ChangeKind.UPDATED,
    (ChangeKind.DELETED, ChangeKind.UPDATED): ChangeKind.UPDATED,
}


def merge_change(first: ChangeKind, latest: ChangeKind) -> ChangeKind | None:
    """合并稳定窗口内同一路径的两个事件"""
    if first == latest:
        return first
    return _MERGE.get((first, latest), latest)


class _TicketFileHandler(FileSystemEventHandler):
    """watchdog 事件 -> (kind, path)，在 observer 线程中执行"""

    def __init__(self, root: Path, dispatch, report_error) -> None:
        self._root = root
        self._dispatch = dispatch
        self._report_error = report_error

    def _forward(self, kind: ChangeKind, raw_path) -> None:
        path = Path(os.fsdecode(raw_path))
        if path.parent != self._root or not is_ticket_filename(path.name):
            return
        self._dispatch(kind, path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(ChangeKind.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(ChangeKind.UPDATED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            if Path(os.fsdecode(event.src_path)) == self._root:
                self._report_error(f"Watched directory removed: {self._root}")
            return
        self._forward(ChangeKind.DELETED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # "写临时文件再 rename"的原子写入；目标已是已知 ticket 时由 ChangeDetector 改判为 updated
        if event.is_directory:
            return
        self._forward(ChangeKind.DELETED, event.src_path)
        self._forward(ChangeKind.CREATED, event.dest_path)


class ChangeDetector:
    """ticket 目录监听器"""

    def __init__(
        self,
        stability_s: float = WATCH_STABILITY_MS / 1000,
        use_polling: bool = WATCH_USE_POLLING,
        poll_interval_s: float = WATCH_POLL_INTERVAL_MS / 1000,
    ) -> None:
        """初始化监听器

        Args:
            stability_s: 稳定窗口（秒）
            use_polling: 使用轮询 observer（网络文件系统更可靠）
            poll_interval_s: 轮询间隔（秒）
        """
        self._stability_s = stability_s
        self._use_polling = use_polling
        self._poll_interval_s = poll_interval_s
        self._observer = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._directory: Path | None = None
        self._pending: dict[Path, _PendingChange] = {}
        # 当前存在的 ticket 文件，用于区分"替换已有文件"与"新建"
        self._known: set[Path] = set()
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    @property
    def directory(self) -> Path | None:
        return self._directory

    def start(self, directory: str | Path) -> None:
        """开始监听目录（必须在事件循环内调用）

        Raises:
            ChangeDetectorError: 目录不存在或监听句柄创建失败
        """
        if self._observer is not None:
            log.warning("change_detector_already_running", directory=str(self._directory))
            return

        root = Path(directory).resolve()
        if not root.is_dir():
            raise ChangeDetectorError(f"Tickets directory does not exist: {root}")

        try:
            self._known = {p for p in root.iterdir() if is_ticket_filename(p.name)}
        except OSError as e:
            raise ChangeDetectorError(f"Failed to list {root}: {e}") from e
        # 上一轮 stop() 留下的结束标记与未消费事件
        while not self._queue.empty():
            self._queue.get_nowait()

        self._loop = asyncio.get_running_loop()
        if self._use_polling:
            observer = PollingObserver(timeout=self._poll_interval_s)
        else:
            observer = Observer()
        handler = _TicketFileHandler(root, self._dispatch_threadsafe, self._error_threadsafe)
        try:
            observer.schedule(handler, str(root), recursive=False)
            observer.start()
        except OSError as e:
            raise ChangeDetectorError(f"Failed to watch {root}: {e}") from e

        self._observer = observer
        self._directory = root
        log.info(
            "change_detector_started",
            directory=str(root),
            polling=self._use_polling,
            stability_ms=int(self._stability_s * 1000),
        )

    async def stop(self) -> None:
        """停止监听并释放句柄；可重复调用"""
        observer, self._observer = self._observer, None
        if observer is None:
            return

        for pending in self._pending.values():
            pending.handle.cancel()
        self._pending.clear()

        observer.stop()
        await asyncio.to_thread(observer.join, 5)
        self._queue.put_nowait(None)
        log.info("change_detector_stopped", directory=str(self._directory))

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """语义事件流；stop() 后结束迭代"""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    def _dispatch_threadsafe(self, kind: ChangeKind, path: Path) -> None:
        self._call_in_loop(self._on_raw_event, kind, path)

    def _error_threadsafe(self, message: str) -> None:
        self._call_in_loop(self._emit_error, message)

    def _call_in_loop(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # 事件循环已关闭
            pass

    def _on_raw_event(self, kind: ChangeKind, path: Path) -> None:
        """同一路径的事件在稳定窗口内合并，并重置窗口计时"""
        if self._observer is None:
            return

        pending = self._pending.pop(path, None)
        if pending is None and kind == ChangeKind.CREATED and path in self._known:
            kind = ChangeKind.UPDATED
        if pending is not None:
            pending.handle.cancel()
            merged = merge_change(pending.kind, kind)
            if merged is None:
                log.debug("ticket_change_cancelled_out", file=path.name)
                return
            kind = merged

        handle = self._loop.call_later(self._stability_s, self._flush, path)
        self._pending[path] = _PendingChange(kind=kind, handle=handle)

    def _flush(self, path: Path) -> None:
        pending = self._pending.pop(path, None)
        if pending is None:
            return
        if pending.kind == ChangeKind.DELETED:
            self._known.discard(path)
        else:
            self._known.add(path)
        log.info("ticket_file_changed", kind=pending.kind.value, file=path.name)
        self._queue.put_nowait(ChangeEvent(kind=pending.kind, path=path))

    def _emit_error(self, message: str) -> None:
        log.error("change_detector_error", message=message)
        self._queue.put_nowait(ChangeEvent(kind=ChangeKind.ERROR, message=message))
