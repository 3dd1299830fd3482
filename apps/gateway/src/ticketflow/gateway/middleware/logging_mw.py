"""LoggingMiddleware -- 请求级 request_id 与访问日志

每个 HTTP 请求分配 ULID request_id（绑定到 structlog contextvars，并通过
X-Request-ID 响应头返回）。探针路径只记 debug；其余按响应状态选择日志级别。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"

# 编排器/负载均衡器高频轮询的路径
_PROBE_PATHS = frozenset({"/health", "/ready"})

log = structlog.get_logger()


def _completion_level(path: str, status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "debug" if path in _PROBE_PATHS else "info"


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求级日志中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
        )
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception as e:
            log.error(
                "request_failed",
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            raise

        status_code = response.status_code
        getattr(log, _completion_level(path, status_code))(
            "request_completed",
            status_code=status_code,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
