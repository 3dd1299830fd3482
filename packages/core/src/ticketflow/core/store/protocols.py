"""Store Protocol 接口定义

使用 Python Protocol 实现结构化子类型（duck typing），
Orchestrator / Sync / 路由层只依赖此接口，测试可替换为内存实现。
"""

from pathlib import Path
from typing import Protocol

from ..models import Ticket, TicketCreate, TicketQuery, TicketUpdate


class TicketStore(Protocol):
    """Ticket 存储接口"""

    @property
    def tickets_dir(self) -> Path:
        """ticket 文件所在目录"""
        ...

    async def list_tickets(self, query: TicketQuery | None = None) -> list[Ticket]:
        """查询 ticket 列表，支持过滤与排序"""
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket:
        """根据 ID 查询 ticket，不存在时抛出 TicketNotFoundError"""
        ...

    async def create_ticket(self, data: TicketCreate) -> Ticket:
        """创建 ticket 并分配新 ID"""
        ...

    async def update_ticket(self, ticket_id: str, changes: TicketUpdate) -> Ticket:
        """合并更新，刷新 updated_at"""
        ...

    async def delete_ticket(self, ticket_id: str) -> None:
        """删除 ticket"""
        ...
