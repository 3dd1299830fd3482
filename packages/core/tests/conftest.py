"""packages/core 测试配置 -- tickets 目录与示例 ticket fixture"""

from collections.abc import Callable
from pathlib import Path

import pytest
import pytest_asyncio
from ticketflow.core.store import FileTicketStore, create_ticket_store


def ticket_text(
    ticket_id: str,
    title: str = "Sample ticket",
    status: str = "backlog",
    priority: str = "medium",
    project: str = "Core",
    body: str = "Some body text",
    created_at: str = "2026-01-01T00:00:00Z",
    updated_at: str | None = None,
    extra: str = "",
) -> str:
    """构造 ticket 文件内容"""
    return (
        "---\n"
        f"id: {ticket_id}\n"
        f"title: {title}\n"
        f"status: {status}\n"
        f"priority: {priority}\n"
        f"project: {project}\n"
        f"createdAt: '{created_at}'\n"
        f"updatedAt: '{updated_at or created_at}'\n"
        f"{extra}"
        "---\n"
        f"{body}\n"
    )


@pytest.fixture
def make_ticket_text() -> Callable[..., str]:
    return ticket_text


@pytest.fixture
def write_ticket(tickets_dir: Path) -> Callable[..., Path]:
    """向 tickets 目录写入 ticket 文件"""

    def _write(ticket_id: str, **fields) -> Path:
        path = tickets_dir / f"{ticket_id}.md"
        path.write_text(ticket_text(ticket_id, **fields), encoding="utf-8")
        return path

    return _write


@pytest_asyncio.fixture
async def store(tickets_dir: Path) -> FileTicketStore:
    return create_ticket_store(tickets_dir)


@pytest_asyncio.fixture
async def seeded_store(store: FileTicketStore, write_ticket) -> FileTicketStore:
    """三个 ticket：high/in-progress、low/backlog、medium/done"""
    write_ticket(
        "TICK-001",
        title="Wire up auth",
        status="in-progress",
        priority="high",
        project="Platform",
        created_at="2026-01-01T00:00:00Z",
        extra="assignee: alice\n",
    )
    write_ticket(
        "TICK-002",
        title="Polish icons",
        status="backlog",
        priority="low",
        project="Design",
        created_at="2026-01-02T00:00:00Z",
    )
    write_ticket(
        "TICK-003",
        title="Ship release",
        status="done",
        priority="medium",
        project="Platform",
        created_at="2026-01-03T00:00:00Z",
        extra="assignee: bob\nestimate: 3\n",
    )
    return store
