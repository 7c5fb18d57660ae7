"""
Configuration for the profit engine.

Configuration is an explicit value passed into every public computation,
never process-global state. Defaults are usable as-is; `load_config()` reads
overrides from environment variables (and a `.env` file if present).

Usage:
    from profit_engine.config import EngineConfig, load_config

    config = load_config()
    summary = compute_overview(dataset, window, config=config)
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

ENV_PREFIX = "PROFIT_ENGINE_"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name, "")
    return int(raw) if raw.strip().isdigit() else default


@dataclass(frozen=True)
class PaginationConfig:
    """Orders table pagination limits."""

    default_page_size: int = 50
    max_page_size: int = 250


@dataclass(frozen=True)
class NormalizationConfig:
    """Record normalization defaults."""

    guest_customer_name: str = "Guest Checkout"
    default_channel: str = "Direct"

    # Substrings that mark an order as cancelled/voided
    cancellation_markers: Tuple[str, ...] = ("cancel", "void", "decline")


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    json_format: bool = False

    # Log operations slower than this at WARNING
    slow_operation_ms: float = 1000.0


@dataclass(frozen=True)
class EngineConfig:
    """Main engine configuration."""

    version: str = "1.0.0"

    # Emit per-report cost breakdowns at DEBUG level
    debug_costs: bool = False

    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


DEFAULT_CONFIG = EngineConfig()


def load_config(env_file: Optional[str] = None) -> EngineConfig:
    """
    Build an EngineConfig from environment variables.

    Args:
        env_file: Optional path to a .env file (default: search from cwd)

    Returns:
        EngineConfig with overrides applied
    """
    load_dotenv(env_file)

    pagination = PaginationConfig(
        default_page_size=_env_int("DEFAULT_PAGE_SIZE", PaginationConfig.default_page_size),
        max_page_size=_env_int("MAX_PAGE_SIZE", PaginationConfig.max_page_size),
    )
    normalization = NormalizationConfig(
        guest_customer_name=os.getenv(
            ENV_PREFIX + "GUEST_NAME", NormalizationConfig.guest_customer_name
        ),
    )
    logging_config = LoggingConfig(
        level=os.getenv(ENV_PREFIX + "LOG_LEVEL", LoggingConfig.level).upper(),
        json_format=_env_bool("LOG_JSON", LoggingConfig.json_format),
    )

    return EngineConfig(
        debug_costs=_env_bool("DEBUG_COSTS", False),
        pagination=pagination,
        normalization=normalization,
        logging=logging_config,
    )
