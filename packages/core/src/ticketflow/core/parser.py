"""Ticket 文件编解码 -- YAML frontmatter + markdown 正文

文件格式：
    ---
    <YAML 元数据>
    ---
    <markdown 正文>

解析失败统一抛出 TicketParseError，调用方（列表查询）据此跳过单个坏文件。
"""

import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import TICKET_FILE_SUFFIX, TICKET_ID_PAD, TICKET_ID_PREFIX
from .models.ticket import Ticket

TICKET_FILENAME_RE = re.compile(
    rf"^{re.escape(TICKET_ID_PREFIX)}(\d+){re.escape(TICKET_FILE_SUFFIX)}$"
)
TICKET_ID_RE = re.compile(rf"{re.escape(TICKET_ID_PREFIX)}(\d+)")

_FENCE = "---"


class TicketParseError(Exception):
    """ticket 文件格式错误"""

    def __init__(self, path: Path | str | None, reason: str) -> None:
        super().__init__(f"Failed to parse ticket {path}: {reason}")
        self.path = path
        self.reason = reason


def is_ticket_filename(name: str) -> bool:
    """文件名是否符合 TICK-<数字>.md 约定"""
    return TICKET_FILENAME_RE.match(name) is not None


def format_ticket_id(number: int) -> str:
    return f"{TICKET_ID_PREFIX}{number:0{TICKET_ID_PAD}d}"


def ticket_filename(ticket_id: str) -> str:
    return f"{ticket_id}{TICKET_FILE_SUFFIX}"


def extract_ticket_id(path: Path | str) -> str:
    """从文件路径中提取 ticket ID

    Raises:
        ValueError: 路径中不含 ticket ID
    """
    match = TICKET_ID_RE.search(Path(path).name)
    if match is None:
        raise ValueError(f"Could not extract ticket ID from path: {path}")
    return match.group(0)


def next_ticket_id(existing_ids: list[str]) -> str:
    """根据已有 ID 计算下一个 ID（最大编号 + 1）"""
    numbers = [
        int(match.group(1))
        for match in (TICKET_ID_RE.search(i) for i in existing_ids)
        if match is not None
    ]
    return format_ticket_id(max(numbers, default=0) + 1)


def _split_frontmatter(text: str) -> tuple[str, str]:
    lines = text.lstrip("\ufeff").splitlines(keepends=True)
    if not lines or lines[0].strip() != _FENCE:
        raise ValueError("missing frontmatter fence")
    for i in range(1, len(lines)):
        if lines[i].strip() == _FENCE:
            return "".join(lines[1:i]), "".join(lines[i + 1:])
    raise ValueError("unterminated frontmatter")


def parse_ticket(path: Path | str | None, content: bytes | str) -> Ticket:
    """将 ticket 文件内容解析为 Ticket

    Args:
        path: 源文件路径（仅用于错误信息与 file_path 字段）
        content: 文件原始内容

    Returns:
        Ticket 实例，body 已去除首尾空白

    Raises:
        TicketParseError: frontmatter 缺失、YAML 非法或元数据校验失败
    """
    try:
        text = content.decode("utf-8") if isinstance(content, bytes) else content
        raw_meta, body = _split_frontmatter(text)
        metadata = yaml.safe_load(raw_meta) or {}
    except (UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
        raise TicketParseError(path, str(e)) from e

    if not isinstance(metadata, dict):
        raise TicketParseError(path, "frontmatter is not a mapping")

    try:
        return Ticket.model_validate(
            {**metadata, "body": body.strip(), "file_path": Path(path) if path else None}
        )
    except ValidationError as e:
        issues = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise TicketParseError(path, f"invalid metadata: {issues}") from e


def serialize_ticket(ticket: Ticket) -> str:
    """将 Ticket 序列化为 frontmatter + 正文，None 字段不落盘"""
    metadata = ticket.model_dump(
        mode="json", by_alias=True, exclude_none=True, exclude={"body"}
    )
    front = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{_FENCE}\n{front}{_FENCE}\n{ticket.body}\n"
