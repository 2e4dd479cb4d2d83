"""Configuration loader for the warninglist engine."""

import os
from dataclasses import dataclass
from typing import Optional


def _bool_from_str(value: str, default: bool = False) -> bool:
    """Convert string to boolean."""
    return value.lower() in ("true", "1", "yes") if value else default


def _positive_int(value: Optional[str], name: str, default: int) -> int:
    """Parse a positive integer, using default when unset."""
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: '{value}'. Must be a positive integer") from None
    if parsed <= 0:
        raise ValueError(f"Invalid {name}: '{value}'. Must be a positive integer")
    return parsed


def _positive_float(value: Optional[str], name: str, default: float) -> float:
    """Parse a positive number, using default when unset."""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: '{value}'. Must be a positive number") from None
    if parsed <= 0:
        raise ValueError(f"Invalid {name}: '{value}'. Must be a positive number")
    return parsed


@dataclass
class EngineConfig:
    """Warninglist engine configuration from environment variables."""

    # Distributed cache (None = process-local cache only)
    redis_url: Optional[str] = None
    cache_timeout: float = 1.0
    key_prefix: str = "misp:"

    # Lookup memoization lifetime in seconds
    memo_ttl: int = 3600

    # Check every indicator, not only those flagged for IDS
    warning_for_all: bool = False

    debug: bool = False


def load_config() -> EngineConfig:
    """Load configuration from environment variables."""
    return EngineConfig(
        redis_url=os.environ.get("WARNINGLIST_REDIS_URL") or None,
        cache_timeout=_positive_float(
            os.environ.get("WARNINGLIST_CACHE_TIMEOUT"), "WARNINGLIST_CACHE_TIMEOUT", 1.0
        ),
        key_prefix=os.environ.get("WARNINGLIST_KEY_PREFIX", "misp:"),
        memo_ttl=_positive_int(
            os.environ.get("WARNINGLIST_MEMO_TTL"), "WARNINGLIST_MEMO_TTL", 3600
        ),
        warning_for_all=_bool_from_str(os.environ.get("WARNINGLIST_WARNING_FOR_ALL", "")),
        debug=_bool_from_str(os.environ.get("WARNINGLIST_DEBUG", "")),
    )
