"""Environment-driven settings.

Every knob of a run is read from the process environment once, at the
handler boundary; nothing below the handler touches ``os.environ``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from pylogexport.executor.engine import (
    DEFAULT_MAX_WAIT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STAGING_PREFIX,
)
from pylogexport.executor.keys import DEFAULT_DESTINATION_PREFIX
from pylogexport.executor.mover import DEFAULT_MOVE_CONCURRENCY
from pylogexport.models import ExportError, RetryPolicy
from pylogexport.storage.manifest import DEFAULT_RESULTS_PREFIX

__all__ = ["Settings", "ConfigError"]

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ExportError):
    """A required setting is missing or a value is malformed."""

    pass


@dataclass(frozen=True)
class Settings:
    """Configuration of one export deployment."""

    target_bucket: str
    log_group_name: str | None = None
    destination_prefix: str = DEFAULT_DESTINATION_PREFIX
    staging_prefix: str = DEFAULT_STAGING_PREFIX
    results_prefix: str = DEFAULT_RESULTS_PREFIX
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_wait: float = DEFAULT_MAX_WAIT
    move_concurrency: int = DEFAULT_MOVE_CONCURRENCY
    move_max_attempts: int = 3
    retry_initial_delay_ms: int = 200
    retry_max_delay_ms: int = 5000
    run_db_path: str | None = None
    aws_region: str | None = None
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.target_bucket:
            raise ConfigError("EXPORT_TARGET_BUCKET_NAME is required")
        if self.poll_interval <= 0:
            raise ConfigError(f"poll interval must be > 0, got {self.poll_interval}")
        if self.max_wait < 0:
            raise ConfigError(f"max wait must be >= 0, got {self.max_wait}")
        if self.move_concurrency < 1:
            raise ConfigError(f"move concurrency must be >= 1, got {self.move_concurrency}")
        if self.move_max_attempts < 1:
            raise ConfigError(f"move max attempts must be >= 1, got {self.move_max_attempts}")
        if self.retry_initial_delay_ms < 0 or self.retry_max_delay_ms < self.retry_initial_delay_ms:
            raise ConfigError(
                f"invalid retry delays: initial={self.retry_initial_delay_ms}ms "
                f"max={self.retry_max_delay_ms}ms"
            )
        if self.log_level not in _LOG_LEVELS:
            raise ConfigError(f"unknown log level: {self.log_level}")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.move_max_attempts,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            backoff_multiplier=2.0,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from environment variables.

        Raises:
            ConfigError: If EXPORT_TARGET_BUCKET_NAME is unset or any value
                cannot be parsed
        """
        env = os.environ if env is None else env

        def text(name: str, default: str | None = None) -> str | None:
            value = env.get(name, "").strip()
            return value or default

        def number(name: str, default, kind):
            raw = text(name)
            if raw is None:
                return default
            try:
                return kind(raw)
            except ValueError as e:
                raise ConfigError(f"{name} must be {kind.__name__}, got {raw!r}") from e

        return cls(
            target_bucket=text("EXPORT_TARGET_BUCKET_NAME", ""),
            log_group_name=text("EXPORT_LOG_GROUP_NAME"),
            destination_prefix=text("EXPORT_DESTINATION_PREFIX", DEFAULT_DESTINATION_PREFIX),
            staging_prefix=text("EXPORT_STAGING_PREFIX", DEFAULT_STAGING_PREFIX),
            results_prefix=text("EXPORT_RESULTS_PREFIX", DEFAULT_RESULTS_PREFIX),
            poll_interval=number("EXPORT_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL, float),
            max_wait=number("EXPORT_MAX_WAIT_SECONDS", DEFAULT_MAX_WAIT, float),
            move_concurrency=number("EXPORT_MOVE_CONCURRENCY", DEFAULT_MOVE_CONCURRENCY, int),
            move_max_attempts=number("EXPORT_MOVE_MAX_ATTEMPTS", 3, int),
            retry_initial_delay_ms=number("EXPORT_RETRY_INITIAL_DELAY_MS", 200, int),
            retry_max_delay_ms=number("EXPORT_RETRY_MAX_DELAY_MS", 5000, int),
            run_db_path=text("EXPORT_RUN_DB_PATH"),
            aws_region=text("EXPORT_AWS_REGION"),
            log_level=text("LOG_LEVEL", "INFO").upper(),
        )
