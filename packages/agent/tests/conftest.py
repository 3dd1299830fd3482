"""packages/agent 测试配置"""

from datetime import UTC, datetime

import pytest
from pydantic import SecretStr
from ticketflow.agent import AgentConfig
from ticketflow.core.models import Ticket


@pytest.fixture
def agent_config() -> AgentConfig:
    return AgentConfig(
        gateway_url="http://agent.test/",
        token=SecretStr("tok-123"),
    )


@pytest.fixture
def sample_ticket() -> Ticket:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    return Ticket(
        id="TICK-012",
        title="Add export button",
        status="backlog",
        priority="high",
        project="Dashboard",
        created_at=now,
        updated_at=now,
        body="Users want CSV export.",
    )
