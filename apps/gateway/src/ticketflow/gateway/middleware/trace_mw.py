"""TraceMiddleware -- 为 ticket 相关请求绑定 ticket_id

从 /api/tickets/{ticket_id}[/...] 路径中提取 ticket_id，
使该请求内的所有日志都带上 ticket 维度。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ticketflow.core.parser import TICKET_ID_RE


class TraceMiddleware(BaseHTTPMiddleware):
    """ticket 级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        parts = request.url.path.split("/")
        for i, part in enumerate(parts):
            if part == "tickets" and i + 1 < len(parts):
                candidate = parts[i + 1]
                if TICKET_ID_RE.fullmatch(candidate):
                    structlog.contextvars.bind_contextvars(ticket_id=candidate)
                break

        return await call_next(request)
