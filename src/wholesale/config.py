"""Runtime settings for the wholesale core, read from the environment.

Protean's own configuration (providers, brokers, event store) is selected
through ``PROTEAN_ENV``; the knobs below tune the engine, dispatcher and
admission guard.
"""

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the wholesale settings."""

    max_mutation_attempts: int = 3
    retry_backoff_seconds: float = 0.05
    mutation_timeout_seconds: float = 30.0
    notification_ttl_hours: int = 24
    notification_cap: int = 100
    poll_interval_seconds: int = 30
    low_stock_threshold: int = 10
    rate_limit: int = 10
    rate_window_seconds: float = 10.0
    notification_store: str = "memory"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            max_mutation_attempts=_int_env("WHOLESALE_MAX_MUTATION_ATTEMPTS", 3),
            retry_backoff_seconds=_float_env("WHOLESALE_RETRY_BACKOFF", 0.05),
            mutation_timeout_seconds=_float_env("WHOLESALE_MUTATION_TIMEOUT", 30.0),
            notification_ttl_hours=_int_env("WHOLESALE_NOTIFICATION_TTL_HOURS", 24),
            notification_cap=_int_env("WHOLESALE_NOTIFICATION_CAP", 100),
            poll_interval_seconds=_int_env("WHOLESALE_POLL_INTERVAL", 30),
            low_stock_threshold=_int_env("WHOLESALE_LOW_STOCK_THRESHOLD", 10),
            rate_limit=_int_env("WHOLESALE_RATE_LIMIT", 10),
            rate_window_seconds=_float_env("WHOLESALE_RATE_WINDOW", 10.0),
            notification_store=os.environ.get("NOTIFICATION_STORE", "memory").lower(),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them from env on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
