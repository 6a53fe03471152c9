"""structlog 配置

ASSIGNFLOW_LOG_FORMAT: dev（控制台可读输出，默认）或 json
ASSIGNFLOW_LOG_LEVEL: 根 logger 级别，默认 INFO
"""

import logging
import os

import structlog

# 第三方库日志只保留 WARNING 及以上
_QUIET_LOGGERS = ("aiosqlite", "httpx", "httpcore", "sse_starlette")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    """初始化 structlog，并让标准库 logging（uvicorn 等）共用同一渲染链"""
    log_format = os.environ.get("ASSIGNFLOW_LOG_FORMAT", "dev").lower()
    log_level = os.environ.get("ASSIGNFLOW_LOG_LEVEL", "INFO").upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        shared_processors.append(structlog.processors.format_exc_info)
    shared_processors.append(structlog.processors.UnicodeDecoder())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
