"""Ticket Domain Model

Ticket 是单个 markdown 文件的结构化表示：frontmatter 元数据 + 正文。
磁盘与线上格式统一使用 camelCase 字段名（createdAt / updatedAt / ...）。
"""

import re
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..config import TICKET_ID_PREFIX
from .enums import (
    ACTIVE_ENRICHMENT_STATES,
    EnrichmentState,
    Priority,
    SortField,
    SortOrder,
    TicketStatus,
)

TICKET_ID_PATTERN = rf"^{re.escape(TICKET_ID_PREFIX)}\d+$"


def _as_utc(value: datetime | None) -> datetime | None:
    """无时区的时间戳按 UTC 解释"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnrichmentStatus(_CamelModel):
    """Enrichment 作业状态子记录

    首次触发前不存在；仅由 EnrichmentOrchestrator 修改；只覆盖，不删除。
    """

    status: EnrichmentState = Field(description="作业状态")
    triggered_at: datetime | None = Field(default=None, description="触发时间")
    completed_at: datetime | None = Field(default=None, description="完成时间")
    session_key: str | None = Field(default=None, description="会话关联键")
    attempts: int | None = Field(default=None, ge=0, description="触发次数")
    last_error: str | None = Field(default=None, description="最近一次错误信息")

    @field_validator("triggered_at", "completed_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ENRICHMENT_STATES


class Ticket(_CamelModel):
    """Ticket 数据模型

    不变量：id 创建后不可变；updated_at 单调不减；id 由 max(已有编号)+1 生成。
    """

    id: str = Field(pattern=TICKET_ID_PATTERN, description="TICK-001 格式标识")
    title: str = Field(min_length=1, description="标题")
    status: TicketStatus = Field(description="生命周期状态")
    priority: Priority = Field(description="优先级")
    project: str = Field(description="所属项目（分组）")
    assignee: str | None = Field(default=None, description="负责人")
    estimate: int | float | None = Field(default=None, description="规模估算")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="最后修改时间")
    enrichment: EnrichmentStatus | None = Field(default=None, description="Enrichment 状态")
    body: str = Field(default="", description="markdown 正文")
    file_path: Path | None = Field(default=None, exclude=True, description="源文件路径")

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def number(self) -> int:
        """标识中的数字部分，用于数值排序"""
        return int(self.id[len(TICKET_ID_PREFIX):])

    def to_wire(self) -> dict:
        """转换为 JSON 可序列化的 camelCase 字典"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TicketCreate(_CamelModel):
    """创建 ticket 的输入"""

    title: str = Field(min_length=1, description="标题")
    status: TicketStatus = Field(default=TicketStatus.BACKLOG)
    priority: Priority = Field(default=Priority.MEDIUM)
    project: str = Field(default="Uncategorized")
    assignee: str | None = None
    estimate: int | float | None = None
    body: str | None = None


class TicketUpdate(_CamelModel):
    """部分更新输入 -- 仅显式提供的字段会覆盖原值"""

    title: str | None = Field(default=None, min_length=1)
    status: TicketStatus | None = None
    priority: Priority | None = None
    project: str | None = None
    assignee: str | None = None
    estimate: int | float | None = None
    body: str | None = None
    enrichment: EnrichmentStatus | None = None


class TicketQuery(BaseModel):
    """列表查询参数：字段相等过滤（合取）+ 排序"""

    status: TicketStatus | None = None
    priority: Priority | None = None
    project: str | None = None
    assignee: str | None = None
    sort: SortField = SortField.ID
    order: SortOrder = SortOrder.ASC
