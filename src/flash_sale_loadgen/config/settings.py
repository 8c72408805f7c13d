import re
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value) -> float:
    """把 "30s" / "2m" / "1h" / 30 解析成秒"""
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[unit or "s"]


class Settings(BaseSettings):
    """压测运行配置，启动时读取一次，之后只读"""

    # 目标服务
    BASE_URL: str = "http://localhost:3000"
    REQUEST_TIMEOUT: float = Field(10.0, gt=0)

    # 并发 / 时长
    VUS: int = Field(150, ge=1)
    DURATION: float = Field(30.0, gt=0)
    GRACEFUL_STOP: float = Field(30.0, ge=0)

    # 下单参数
    FLASH_SALE_ID: str = "00000000-0000-0000-0000-000000000001"
    QUANTITY: int = Field(1, ge=1)
    THINK_TIME: float = Field(0.1, ge=0)  # 每次提交后的小睡，避免打满网卡

    # 幂等键重放
    KEY_POOL_SIZE: int = Field(50, ge=0)
    REPLAY_PROBABILITY: float = Field(0.2, ge=0.0, le=1.0)

    # 轮询
    MAX_POLL_ATTEMPTS: int = Field(10, ge=1)
    POLL_INTERVAL: float = Field(1.0, ge=0)

    RANDOM_SEED: Optional[int] = None
    REPORT_PATH: Optional[str] = None

    # 日志
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("DURATION", "GRACEFUL_STOP", mode="before")
    @classmethod
    def _parse_duration(cls, value):
        return parse_duration(value)

    @field_validator("BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("LOG_FORMAT")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return value
