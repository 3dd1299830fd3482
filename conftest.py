"""全局 pytest 配置 -- 临时 tickets 目录 + 测试环境隔离"""

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _local_logging_only(monkeypatch):
    """测试期间不向 Logfire 发送数据"""
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")


@pytest.fixture
def tickets_dir(tmp_path: Path) -> Path:
    """提供空的临时 tickets 目录"""
    path = tmp_path / "tickets"
    path.mkdir()
    return path
