"""AgentClient -- Enrichment agent gateway HTTP 调用封装

通过 POST {gateway_url}/tools/invoke 派生子会话：
    {"tool": ..., "args": {"agentId", "label", "task", "cleanup", "runTimeoutSeconds"}}
成功响应 {"ok": true, "result": {"childSessionKey": ...}}，
失败响应 {"ok": false, "error": {"message": ...}}。
"""

import time

import httpx
import structlog

from .config import AgentConfig
from .exceptions import AgentInvocationError, AgentPreconditionError, AgentTransportError
from .models import AgentInvocationResult, AgentTask

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 错误响应正文截断长度
ERROR_BODY_PREVIEW = 500


class AgentClient:
    """Agent gateway 客户端

    单个 httpx.AsyncClient 在实例生命周期内复用，关闭时调用 aclose()。
    """

    def __init__(
        self,
        config: AgentConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """初始化 Agent gateway 客户端

        Args:
            config: Agent 配置
            transport: 自定义 httpx transport（测试时注入 MockTransport）
        """
        self._config = config
        self._base_url = config.gateway_url.rstrip("/")
        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=config.request_timeout_s,
        )

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def invoke(self, task: AgentTask) -> AgentInvocationResult:
        """派生一个 agent 子会话

        Args:
            task: 任务描述

        Returns:
            AgentInvocationResult，包含 gateway 返回的子会话标识

        Raises:
            AgentPreconditionError: 未配置 token（不发出请求）
            AgentTransportError: 连接失败、超时或非 2xx 响应
            AgentInvocationError: gateway 返回 ok=false 或无法解析的响应
        """
        if not self._config.has_token:
            raise AgentPreconditionError(
                "Agent gateway token not configured - cannot spawn enrichment agent"
            )

        url = f"{self._base_url}/tools/invoke"
        payload = {
            "tool": self._config.tool,
            "args": {
                "agentId": self._config.agent_id,
                "label": task.label,
                "task": task.task,
                "cleanup": self._config.cleanup,
                "runTimeoutSeconds": self._config.run_timeout_s,
            },
        }
        headers = {
            "Authorization": f"Bearer {self._config.token.get_secret_value()}",
        }

        start_time = time.monotonic()
        log.debug("agent_invoke_start", url=url, label=task.label)
        try:
            response = await self._http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise AgentTransportError(
                f"Agent gateway unreachable: {e}",
                gateway_url=url,
            ) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)

        if not response.is_success:
            raise AgentTransportError(
                f"Gateway returned {response.status_code}: "
                f"{response.text[:ERROR_BODY_PREVIEW]}",
                gateway_url=url,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AgentInvocationError(f"Gateway returned invalid JSON: {e}") from e

        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else body
            message = error.get("message") if isinstance(error, dict) else None
            raise AgentInvocationError(
                f"Gateway error: {message or error}",
                payload=error,
            )

        result = body.get("result") or {}
        child_session_key = result.get("childSessionKey") if isinstance(result, dict) else None
        log.info(
            "agent_invoke_completed",
            label=task.label,
            child_session_key=child_session_key,
            duration_ms=duration_ms,
        )
        return AgentInvocationResult(
            child_session_key=child_session_key,
            duration_ms=duration_ms,
        )

    async def health_check(self) -> bool:
        """检查 gateway 可达性

        此方法不抛出异常，所有异常内部捕获并返回 False。
        """
        url = f"{self._base_url}/health"
        try:
            resp = await self._http.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
            return resp.is_success
        except Exception as e:
            log.debug("agent_health_check_failed", url=url, error=str(e))
            return False

    async def aclose(self) -> None:
        await self._http.aclose()
