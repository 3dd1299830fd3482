"""AgentConfig -- Enrichment agent gateway 配置加载

从环境变量加载配置；token 未通过环境变量提供时，
回退读取本地 agent 配置文件中的 gateway.auth.token。
"""

import json
import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

DEFAULT_AGENT_CONFIG_FILE = Path("~/.openclaw/openclaw.json")


class AgentConfig(BaseModel):
    """Agent 包配置 -- 从环境变量加载

    环境变量:
        AGENT_GATEWAY_URL: Gateway 地址（默认 http://localhost:18789）
        AGENT_GATEWAY_TOKEN: Bearer token
        AGENT_ID: 目标 agent 标识（默认 grooming）
        AGENT_TOOL: 调用的工具标识（默认 sessions_spawn）
        AGENT_CLEANUP: 子会话清理策略（默认 keep）
        AGENT_RUN_TIMEOUT_S: 子会话运行超时（秒，默认 300）
        AGENT_REQUEST_TIMEOUT_S: HTTP 请求超时（秒，默认 30）
    """

    gateway_url: str = Field(
        default="http://localhost:18789",
        description="Agent gateway 基础 URL",
    )
    token: SecretStr = Field(
        default=SecretStr(""),
        description="Gateway Bearer token，为空时禁止调用",
    )
    agent_id: str = Field(default="grooming", description="目标 agent 标识")
    tool: str = Field(default="sessions_spawn", description="调用的工具标识")
    cleanup: str = Field(default="keep", description="子会话清理策略")
    run_timeout_s: int = Field(default=300, ge=1, description="子会话运行超时（秒）")
    request_timeout_s: int = Field(default=30, ge=1, description="HTTP 请求超时（秒）")

    @property
    def has_token(self) -> bool:
        return bool(self.token.get_secret_value())


def _read_token_from_file(path: Path) -> str | None:
    """从 agent 配置文件读取 gateway.auth.token，文件缺失或格式错误返回 None"""
    try:
        data = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    try:
        token = data["gateway"]["auth"]["token"]
    except (KeyError, TypeError):
        return None
    if token:
        log.info("agent_token_loaded_from_file", path=str(path))
    return token or None


def _int_env(name: str, default: int) -> int | None:
    val = os.environ.get(name)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        log.warning("invalid_int_config", env_var=name, value=val, fallback=default)
        return None


def load_agent_config() -> AgentConfig:
    """从环境变量加载 Agent 配置

    环境变量映射:
        AGENT_GATEWAY_URL -> gateway_url
        AGENT_GATEWAY_TOKEN -> token（缺失时读取 AGENT_CONFIG_FILE）
        AGENT_ID / AGENT_TOOL / AGENT_CLEANUP -> agent_id / tool / cleanup
        AGENT_RUN_TIMEOUT_S / AGENT_REQUEST_TIMEOUT_S -> 超时（非法值回退默认）

    Returns:
        AgentConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("AGENT_GATEWAY_URL"):
        kwargs["gateway_url"] = val

    token = os.environ.get("AGENT_GATEWAY_TOKEN") or _read_token_from_file(
        Path(os.environ.get("AGENT_CONFIG_FILE", str(DEFAULT_AGENT_CONFIG_FILE)))
    )
    if token:
        kwargs["token"] = SecretStr(token)

    if val := os.environ.get("AGENT_ID"):
        kwargs["agent_id"] = val
    if val := os.environ.get("AGENT_TOOL"):
        kwargs["tool"] = val
    if val := os.environ.get("AGENT_CLEANUP"):
        kwargs["cleanup"] = val

    if (val := _int_env("AGENT_RUN_TIMEOUT_S", 300)) is not None:
        kwargs["run_timeout_s"] = val
    if (val := _int_env("AGENT_REQUEST_TIMEOUT_S", 30)) is not None:
        kwargs["request_timeout_s"] = val

    return AgentConfig(**kwargs)
