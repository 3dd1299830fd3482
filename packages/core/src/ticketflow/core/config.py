"""配置常量模块 -- 可通过环境变量覆盖

包含 tickets 目录、文件命名约定、文件监听稳定窗口、SSE 心跳等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TICKETFLOW_DATA_DIR", "data"))


def get_tickets_dir() -> Path:
    """获取 ticket 文件所在的扁平目录"""
    return Path(
        os.environ.get(
            "TICKETFLOW_TICKETS_DIR",
            str(_get_base_dir() / "tickets"),
        )
    )


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


# 文件命名约定：TICK-001.md
TICKET_ID_PREFIX: str = "TICK-"
TICKET_FILE_SUFFIX: str = ".md"
TICKET_ID_PAD: int = 3

# 文件写入稳定窗口（毫秒）：超过此时间无新写入才发出事件
WATCH_STABILITY_MS: int = int(os.environ.get("TICKETFLOW_WATCH_STABILITY_MS", "300"))

# 是否使用轮询监听（网络文件系统与部分 Linux 环境更可靠）
WATCH_USE_POLLING: bool = _env_flag("TICKETFLOW_WATCH_POLLING", True)

# 轮询间隔（毫秒）
WATCH_POLL_INTERVAL_MS: int = int(
    os.environ.get("TICKETFLOW_WATCH_POLL_INTERVAL_MS", "500")
)

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("TICKETFLOW_SSE_HEARTBEAT_INTERVAL", "15")
)

# 单个订阅者队列上限，写满视为断开
SUBSCRIBER_QUEUE_MAXSIZE: int = 100
