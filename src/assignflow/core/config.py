"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、工作码格式、支付容差、SSE 心跳、通知投递等可配置项。
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("ASSIGNFLOW_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "ASSIGNFLOW_DB_PATH",
        str(_get_base_dir() / "sqlite" / "assignflow.db"),
    )


# 查询码前缀（支付前引用）
QUERY_CODE_PREFIX: str = os.environ.get("ASSIGNFLOW_QUERY_CODE_PREFIX", "QUERY_")

# 查询码随机部分长度
QUERY_CODE_RANDOM_LENGTH: int = 8

# 查询码唯一约束冲突时的最大重试次数
QUERY_CODE_MAX_RETRIES: int = int(
    os.environ.get("ASSIGNFLOW_QUERY_CODE_MAX_RETRIES", "3")
)

# 工作码前缀（支付确认后引用）
WORK_CODE_PREFIX: str = os.environ.get("ASSIGNFLOW_WORK_CODE_PREFIX", "WC")

# 工作码随机后缀长度
WORK_CODE_SUFFIX_LENGTH: int = 5

# 工作码唯一约束冲突时的最大重试次数
WORK_CODE_MAX_RETRIES: int = int(
    os.environ.get("ASSIGNFLOW_WORK_CODE_MAX_RETRIES", "3")
)

# 100% 核验时允许的金额偏差（相对 total_price 的比例）
PAYMENT_AMOUNT_TOLERANCE: float = float(
    os.environ.get("ASSIGNFLOW_PAYMENT_TOLERANCE", "0.05")
)

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("ASSIGNFLOW_SSE_HEARTBEAT_INTERVAL", "15")
)

# 截止提醒扫描窗口（小时）与分级阈值
DEADLINE_WINDOW_HOURS: int = int(
    os.environ.get("ASSIGNFLOW_DEADLINE_WINDOW_HOURS", "24")
)
DEADLINE_REMINDER_TIERS: tuple[int, ...] = (1, 6, 12, 24)

# "不可完成" 评估理由最短长度
NOT_DOABLE_MIN_REASON_LENGTH: int = 5

# 通知标题截断长度
NOTIFICATION_TITLE_MAX_LENGTH: int = 120


class DeliveryConfig(BaseModel):
    """外部通知投递（邮件/短信网关）配置 -- 从环境变量加载

    环境变量:
        ASSIGNFLOW_DELIVERY_MODE: 投递模式（log/webhook，默认 log）
        ASSIGNFLOW_DELIVERY_WEBHOOK_URL: webhook 地址
        ASSIGNFLOW_NOTIFY_TIMEOUT_S: 单次投递超时（秒，默认 5）
    """

    mode: Literal["log", "webhook"] = Field(
        default="log",
        description="投递模式：log 仅记录日志；webhook 通过 HTTP POST 转发",
    )
    webhook_url: str = Field(
        default="",
        description="webhook 投递地址（mode=webhook 时必填）",
    )
    timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="单次投递超时（秒），超时视为非致命失败",
    )


def load_delivery_config() -> DeliveryConfig:
    """从环境变量加载投递配置

    非法的超时值记录 warning 并回退默认值，不阻塞启动。
    """
    kwargs: dict = {}

    if val := os.environ.get("ASSIGNFLOW_DELIVERY_MODE"):
        kwargs["mode"] = val

    if val := os.environ.get("ASSIGNFLOW_DELIVERY_WEBHOOK_URL"):
        kwargs["webhook_url"] = val

    if val := os.environ.get("ASSIGNFLOW_NOTIFY_TIMEOUT_S"):
        try:
            timeout_s = float(val)
            if timeout_s <= 0:
                raise ValueError(val)
            kwargs["timeout_s"] = timeout_s
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="ASSIGNFLOW_NOTIFY_TIMEOUT_S",
                value=val,
                fallback=5.0,
            )

    if kwargs.get("mode") == "webhook" and not kwargs.get("webhook_url"):
        log.warning(
            "delivery_webhook_url_missing",
            fallback_mode="log",
        )
        kwargs["mode"] = "log"

    return DeliveryConfig(**kwargs)
