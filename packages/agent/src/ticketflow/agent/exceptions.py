"""Agent 异常体系

AgentTransportError / AgentInvocationError 可重试；
AgentPreconditionError（未配置 token）不可重试，立即失败。
"""


class AgentError(Exception):
    """Agent 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class AgentPreconditionError(AgentError):
    """调用前置条件不满足（如缺少 Bearer token），不重试"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class AgentTransportError(AgentError):
    """Gateway 不可达或返回非 2xx 状态

    Args:
        gateway_url: 请求的 URL
        status_code: HTTP 状态码，连接类错误时为 None
    """

    def __init__(
        self,
        message: str,
        gateway_url: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, recoverable=True)
        self.gateway_url = gateway_url
        self.status_code = status_code


class AgentInvocationError(AgentError):
    """Gateway 返回 ok=false 的错误载荷"""

    def __init__(self, message: str, payload: object = None) -> None:
        super().__init__(message, recoverable=True)
        self.payload = payload
