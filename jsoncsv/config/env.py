from __future__ import annotations
import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ServerConfig:
    api_key: str | None = None
    rate_limit_n: int = 5
    rate_limit_window_sec: float = 1.0
    max_content_length: int = 50 * 1024 * 1024


def get_server_config() -> ServerConfig:
    return ServerConfig(
        api_key=os.getenv("API_KEY") or None,
        rate_limit_n=int(os.getenv("RATE_LIMIT_N", "5")),
        rate_limit_window_sec=float(os.getenv("RATE_LIMIT_WINDOW_SEC", "1.0")),
        max_content_length=int(os.getenv("MAX_CONTENT_LENGTH", str(50 * 1024 * 1024))),
    )


@dataclass(frozen=True)
class JobConfig:
    max_jobs: int = 100


def get_job_config() -> JobConfig:
    return JobConfig(max_jobs=int(os.getenv("JOB_MAX_RETAINED", "100")))


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"


def get_log_config() -> LogConfig:
    return LogConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())


def configure_logging(config: LogConfig | None = None) -> None:
    """Apply LogConfig to the root logger; later calls are no-ops."""
    config = config or get_log_config()
    logging.basicConfig(
        level=getattr(logging, config.level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
