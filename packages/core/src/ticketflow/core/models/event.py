"""事件模型

ChangeEvent：文件监听器发出的路径级事件，不读取文件内容。
TicketEvent：广播给订阅者的事件信封，event_id 使用 ULID 格式。
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from ulid import ULID

from .enums import ChangeKind, TicketEventType


class ChangeEvent(BaseModel):
    """文件变更事件"""

    kind: ChangeKind = Field(description="created / updated / deleted / error")
    path: Path | None = Field(default=None, description="ticket 文件路径")
    message: str | None = Field(default=None, description="error 事件的错误描述")


class TicketEvent(BaseModel):
    """广播事件信封"""

    event_id: str = Field(default_factory=lambda: str(ULID()))
    type: TicketEventType
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ticket_id: str | None = Field(default=None, description="目标 ticket，None 表示全局事件")
    payload: Any = Field(default=None)

    def to_wire(self) -> dict:
        return {
            "eventId": self.event_id,
            "type": self.type.value,
            "ts": self.ts.isoformat(),
            "ticketId": self.ticket_id,
            "payload": self.payload,
        }
