"""Agent 调用数据模型"""

from pydantic import BaseModel, Field


class AgentTask(BaseModel):
    """一次 agent 调用请求"""

    label: str = Field(description="子会话标签，如 groom-TICK-001")
    task: str = Field(description="可读任务描述")


class AgentInvocationResult(BaseModel):
    """Gateway 确认结果"""

    child_session_key: str | None = Field(default=None, description="子会话标识")
    duration_ms: int = Field(default=0, ge=0, description="请求耗时（毫秒）")
