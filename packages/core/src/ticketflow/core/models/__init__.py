"""TicketFlow Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_ENRICHMENT_STATES,
    INITIAL_STATUS,
    PRIORITY_ORDER,
    TERMINAL_ENRICHMENT_STATES,
    ChangeKind,
    EnrichmentState,
    Priority,
    SortField,
    SortOrder,
    TicketEventType,
    TicketStatus,
)
from .event import ChangeEvent, TicketEvent
from .ticket import (
    TICKET_ID_PATTERN,
    EnrichmentStatus,
    Ticket,
    TicketCreate,
    TicketQuery,
    TicketUpdate,
)

__all__ = [
    # 枚举
    "TicketStatus",
    "Priority",
    "EnrichmentState",
    "ChangeKind",
    "TicketEventType",
    "SortField",
    "SortOrder",
    # 常量
    "INITIAL_STATUS",
    "PRIORITY_ORDER",
    "ACTIVE_ENRICHMENT_STATES",
    "TERMINAL_ENRICHMENT_STATES",
    "TICKET_ID_PATTERN",
    # Ticket
    "Ticket",
    "EnrichmentStatus",
    "TicketCreate",
    "TicketUpdate",
    "TicketQuery",
    # Event
    "ChangeEvent",
    "TicketEvent",
]
