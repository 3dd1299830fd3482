"""枚举定义

包含 TicketStatus、Priority、EnrichmentState、ChangeKind、TicketEventType 等枚举，
以及优先级全序和 enrichment 活跃/终态集合。
"""

from enum import StrEnum


class TicketStatus(StrEnum):
    """Ticket 生命周期状态"""

    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


# 新建 ticket 的初始状态
INITIAL_STATUS: TicketStatus = TicketStatus.BACKLOG


class Priority(StrEnum):
    """优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# 排序用全序：high < medium < low
PRIORITY_ORDER: dict[Priority, int] = {
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


class EnrichmentState(StrEnum):
    """Enrichment 作业状态"""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"
    MANUAL = "manual"


ACTIVE_ENRICHMENT_STATES: set[EnrichmentState] = {
    EnrichmentState.PENDING,
    EnrichmentState.IN_PROGRESS,
}

TERMINAL_ENRICHMENT_STATES: set[EnrichmentState] = {
    EnrichmentState.COMPLETE,
    EnrichmentState.FAILED,
    EnrichmentState.MANUAL,
}


class ChangeKind(StrEnum):
    """文件监听器发出的语义事件类型"""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ERROR = "error"


class TicketEventType(StrEnum):
    """广播给订阅者的事件类型"""

    INIT = "tickets:init"
    CREATED = "ticket:created"
    UPDATED = "ticket:updated"
    DELETED = "ticket:deleted"
    ERROR = "error"


class SortField(StrEnum):
    """列表排序字段"""

    ID = "id"
    PRIORITY = "priority"
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"
