"""structlog 配置模块

dev 模式：彩色控制台输出；json 模式：每行一个 JSON 对象，异常展开为结构化 traceback。
标准库 logging（uvicorn、watchdog、httpx）经 ProcessorFormatter 统一渲染。
Logfire APM 由 LOGFIRE_SEND_TO_LOGFIRE 控制，未启用或初始化失败时只输出本地日志。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 第三方 logger 的最低级别；uvicorn.access 与 LoggingMiddleware 的请求日志重复
_THIRD_PARTY_LEVELS = {
    "watchdog": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(log_format: str) -> structlog.stdlib.ProcessorFormatter:
    if log_format == "json":
        tail = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        tail = [structlog.dev.ConsoleRenderer()]
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *tail],
        foreign_pre_chain=_shared_processors(),
    )


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 与标准库 logging

    参数为 None 时读取环境变量:
        TICKETFLOW_LOG_FORMAT: "json" 或 "dev"（默认）
        TICKETFLOW_LOG_LEVEL: 日志级别（默认 INFO）
    """
    log_format = (log_format or os.environ.get("TICKETFLOW_LOG_FORMAT", "dev")).lower()
    log_level = (log_level or os.environ.get("TICKETFLOW_LOG_LEVEL", "INFO")).upper()

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(_formatter(log_format))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for name, level in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def setup_logfire(app: FastAPI) -> bool:
    """按需启用 Logfire：FastAPI 请求 + 出站 httpx 调用（agent gateway）

    Returns:
        是否已启用
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="ticketflow-gateway")
        logfire.instrument_fastapi(app)
        logfire.instrument_httpx()
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error_type=type(e).__name__,
            error=str(e),
        )
        return False
    return True
