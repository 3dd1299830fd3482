"""路由层错误响应

错误体统一为 {"error": {"code", "message"}}。
"""

import re

from starlette.responses import JSONResponse
from ticketflow.core.models import TICKET_ID_PATTERN

_TICKET_ID = re.compile(TICKET_ID_PATTERN)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def invalid_ticket_id(ticket_id: str) -> JSONResponse | None:
    """ID 格式不合法时返回 400 响应，否则返回 None"""
    if _TICKET_ID.match(ticket_id):
        return None
    return error_response(
        400,
        "INVALID_TICKET_ID",
        f"Invalid ticket ID format: {ticket_id}",
    )


def ticket_not_found(ticket_id: str) -> JSONResponse:
    return error_response(
        404,
        "TICKET_NOT_FOUND",
        f"Ticket with id {ticket_id} does not exist",
    )


def ticket_unreadable(ticket_id: str, reason: str) -> JSONResponse:
    return error_response(
        422,
        "TICKET_PARSE_ERROR",
        f"Ticket {ticket_id} could not be parsed: {reason}",
    )
