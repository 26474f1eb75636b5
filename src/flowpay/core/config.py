"""
Configuration management for FlowPay.

Handles loading configuration from environment variables (and an optional
`.env` file) and validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

from dotenv import load_dotenv


def _get_env_var(name: str, default: str | None = None, required: bool = False) -> str | None:
    """Get environment variable with optional default."""
    value = os.environ.get(name, default)
    if required and not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value


@dataclass(frozen=True)
class Config:
    """FlowPay process configuration."""

    storage_backend: str = "memory"
    redis_url: str | None = None
    log_level: str = "INFO"
    env: str = "development"

    # Currency assumed for funding sources and QR payloads that omit one
    default_currency: str = "USD"

    # Handoff timing (seconds)
    handoff_timeout: float = 300.0  # 5 minutes without a detected return
    handoff_return_delay: float = 0.5

    # Per-user commit lock
    lock_ttl: int = 30
    lock_retry_count: int = 10
    lock_retry_delay: float = 0.1

    # Transient storage read retries
    read_retry_attempts: int = 3

    def __post_init__(self) -> None:
        if not self.default_currency or len(self.default_currency) != 3:
            raise ValueError("default_currency must be a 3-letter currency code")
        if self.handoff_timeout <= 0:
            raise ValueError("handoff_timeout must be positive")
        if self.handoff_return_delay < 0:
            raise ValueError("handoff_return_delay cannot be negative")
        if self.read_retry_attempts < 1:
            raise ValueError("read_retry_attempts must be at least 1")

    @classmethod
    def from_env(cls, load_env_file: bool = True, **overrides: Any) -> Config:
        """Load configuration from environment variables."""
        if load_env_file:
            load_dotenv()

        storage_backend = overrides.get("storage_backend") or _get_env_var(
            "FLOWPAY_STORAGE_BACKEND", default="memory"
        )
        redis_url = overrides.get("redis_url") or _get_env_var("FLOWPAY_REDIS_URL")
        log_level = overrides.get("log_level") or _get_env_var(
            "FLOWPAY_LOG_LEVEL", default="INFO"
        )
        env = overrides.get("env") or _get_env_var("FLOWPAY_ENV", default="development")
        default_currency = overrides.get("default_currency") or _get_env_var(
            "FLOWPAY_DEFAULT_CURRENCY", default="USD"
        )

        handoff_timeout = overrides.get("handoff_timeout") or float(
            _get_env_var("FLOWPAY_HANDOFF_TIMEOUT", default=str(cls.handoff_timeout))  # type: ignore
        )

        return cls(
            storage_backend=storage_backend,  # type: ignore
            redis_url=redis_url,
            log_level=log_level,  # type: ignore
            env=env,  # type: ignore
            default_currency=default_currency.upper(),  # type: ignore
            handoff_timeout=handoff_timeout,
            handoff_return_delay=overrides.get("handoff_return_delay", cls.handoff_return_delay),
            lock_ttl=overrides.get("lock_ttl", cls.lock_ttl),
            lock_retry_count=overrides.get("lock_retry_count", cls.lock_retry_count),
            lock_retry_delay=overrides.get("lock_retry_delay", cls.lock_retry_delay),
            read_retry_attempts=overrides.get("read_retry_attempts", cls.read_retry_attempts),
        )

    def with_updates(self, **updates: Any) -> Config:
        """Create a new Config with updated values."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(updates)
        return Config(**current)

    def masked_redis_url(self) -> str | None:
        """Return the Redis URL with credentials masked for safe logging."""
        if not self.redis_url or "@" not in self.redis_url:
            return self.redis_url
        scheme, _, rest = self.redis_url.partition("://")
        host = rest.rsplit("@", 1)[-1]
        return f"{scheme}://****@{host}"
