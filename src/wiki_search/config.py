"""
Configuration helpers for storage paths, embedding settings, and logging.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger


DEFAULT_DB_PATH = "~/.wiki_search/wiki.duckdb"
ENV_DB_PATH = "WIKI_SEARCH_DB_PATH"
ENV_LOG_LEVEL = "WIKI_SEARCH_LOG_LEVEL"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) WIKI_SEARCH_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def env_int(name: str, default: int) -> int:
    """Read a positive integer setting, falling back to *default* when unset."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = int(raw)
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


def env_float(name: str, default: float) -> float:
    """Read a non-negative float setting, falling back to *default* when unset."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = float(raw)
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def configure_logging(level: str | None = None) -> None:
    """Route loguru output to stderr at the configured level."""
    resolved_level = (level or os.getenv(ENV_LOG_LEVEL) or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=resolved_level)
