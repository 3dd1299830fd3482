"""TicketFlow Agent -- Enrichment agent gateway 调用层

packages/agent 的公开接口导出。
"""

from .client import AgentClient
from .config import AgentConfig, load_agent_config
from .exceptions import (
    AgentError,
    AgentInvocationError,
    AgentPreconditionError,
    AgentTransportError,
)
from .models import AgentInvocationResult, AgentTask
from .prompts import build_enrichment_task

__all__ = [
    "AgentTask",
    "AgentInvocationResult",
    "AgentClient",
    "AgentConfig",
    "load_agent_config",
    "build_enrichment_task",
    "AgentError",
    "AgentPreconditionError",
    "AgentTransportError",
    "AgentInvocationError",
]
