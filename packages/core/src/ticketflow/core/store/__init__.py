"""TicketFlow Core Store -- 文件目录持久化实现

每个 ticket 对应扁平目录下的一个 TICK-<编号>.md 文件。
"""

from pathlib import Path

from .protocols import TicketStore
from .ticket_store import (
    FileTicketStore,
    TicketNotFoundError,
    TicketStoreError,
    filter_tickets,
    sort_tickets,
)


def create_ticket_store(tickets_dir: str | Path) -> FileTicketStore:
    """创建文件 Store，确保目录存在

    Args:
        tickets_dir: ticket 文件目录

    Returns:
        FileTicketStore 实例
    """
    path = Path(tickets_dir)
    path.mkdir(parents=True, exist_ok=True)
    return FileTicketStore(path)


__all__ = [
    "TicketStore",
    "FileTicketStore",
    "TicketNotFoundError",
    "TicketStoreError",
    "create_ticket_store",
    "filter_tickets",
    "sort_tickets",
]
