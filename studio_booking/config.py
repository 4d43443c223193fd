"""
Centralized configuration with environment variable overrides.

Studio defaults, engine tuning and push notification settings live here.
Per-studio data that the coach edits (prices, stations, hours) is not
configuration: it travels as a StudioConfig snapshot.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from studio_booking import time_range
from studio_booking.logging_context import RequestIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class StudioDefaults:
    """Values used when no studio snapshot has been saved yet."""

    name: str = os.getenv("STUDIO_NAME", "Indoor Cycling Studio")
    price_per_hour: float = _safe_float("DEFAULT_PRICE_PER_HOUR", "100")
    open_time: str = os.getenv("DEFAULT_OPEN", "06:00")
    close_time: str = os.getenv("DEFAULT_CLOSE", "22:00")
    slot_interval_minutes: int = _safe_int("SLOT_INTERVAL_MINUTES", "30")
    booking_window_days: int = _safe_int("BOOKING_WINDOW_DAYS", "14")


@dataclass(frozen=True)
class EngineConfig:
    """Reservation engine tuning."""

    reserve_retries: int = _safe_int("RESERVE_RETRIES", "3")
    storage_latency_ms: int = _safe_int("STORAGE_LATENCY_MS", "0")


@dataclass(frozen=True)
class NotifyConfig:
    """Push webhook settings for the coach's booking notifications."""

    api_base: str = os.getenv("PUSH_API_BASE", "https://sctapi.ftqq.com")
    send_key: str = os.getenv("PUSH_SEND_KEY", "")
    timeout_sec: float = _safe_float("PUSH_TIMEOUT_SEC", "10.0")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    studio: StudioDefaults = field(default_factory=StudioDefaults)
    engine: EngineConfig = field(default_factory=EngineConfig)
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.studio.price_per_hour < 0:
        raise ValueError(
            f"DEFAULT_PRICE_PER_HOUR must be >= 0, got {config.studio.price_per_hour}"
        )
    minutes = {}
    for var_name, value in [
        ("DEFAULT_OPEN", config.studio.open_time),
        ("DEFAULT_CLOSE", config.studio.close_time),
    ]:
        try:
            minutes[var_name] = time_range.parse(value)
        except time_range.InvalidTimeFormat:
            raise ValueError(f"{var_name} must be HH:MM, got {value!r}") from None
    if minutes["DEFAULT_OPEN"] >= minutes["DEFAULT_CLOSE"]:
        raise ValueError(
            "DEFAULT_OPEN must be earlier than DEFAULT_CLOSE, "
            f"got {config.studio.open_time}-{config.studio.close_time}"
        )
    if config.studio.slot_interval_minutes < 1:
        raise ValueError(
            f"SLOT_INTERVAL_MINUTES must be >= 1, got {config.studio.slot_interval_minutes}"
        )
    if config.studio.booking_window_days < 1:
        raise ValueError(
            f"BOOKING_WINDOW_DAYS must be >= 1, got {config.studio.booking_window_days}"
        )
    if config.engine.reserve_retries < 1:
        raise ValueError(
            f"RESERVE_RETRIES must be >= 1, got {config.engine.reserve_retries}"
        )
    if config.engine.storage_latency_ms < 0:
        raise ValueError(
            f"STORAGE_LATENCY_MS must be >= 0, got {config.engine.storage_latency_ms}"
        )
    if config.notify.timeout_sec <= 0:
        raise ValueError(
            f"PUSH_TIMEOUT_SEC must be > 0, got {config.notify.timeout_sec}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Every record reaching a root handler gets request_id.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
    logger.info("Configuration loaded for '%s'", config.studio.name)
    return config


# Singleton instance
settings = load_config()
