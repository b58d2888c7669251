"""Central configuration for the brewery core.

All values have a sensible default and can be overridden through
environment variables. Invalid values silently fall back to the default.
"""
from __future__ import annotations
import os


def _get_int_env(name: str, default: int, minval: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_float_env(name: str, default: float, minval: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = float(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in {"1", "true", "yes", "on"}


def _get_choice_env(name: str, default: str, choices: set[str]) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val if val in choices else default


# ---------------- Storage ----------------
STORAGE_TYPES = {"flatfile", "sqlite"}


def get_data_dir() -> str:
    """Folder holding the storage file and any legacy data files."""
    return os.getenv("BREWERY_DATA_DIR", "data")


def get_storage_type() -> str:
    return _get_choice_env("BREWERY_STORAGE_TYPE", "flatfile", STORAGE_TYPES)


def get_storage_database() -> str:
    """Base name of the storage file (extension added by the backend)."""
    return os.getenv("BREWERY_STORAGE_DATABASE", "brewery-data")


def get_table_prefix() -> str:
    return os.getenv("BREWERY_TABLE_PREFIX", "brewery_")


# Minutes between two automatic saves
AUTOSAVE_MINUTES: int = _get_int_env("BREWERY_AUTOSAVE_MINUTES", 3, minval=1)

# ---------------- Scoring ----------------
# New wood algorithm (distance table) instead of the linear legacy one
NEW_WOOD_ALGORITHM: bool = _get_bool_env("BREWERY_NEW_WOOD_ALGORITHM", True)

# ---------------- Legacy import ----------------
# Legacy brews untouched for longer than this are dropped (default 4 months)
LEGACY_RETENTION_HOURS: int = _get_int_env("BREWERY_LEGACY_RETENTION_HOURS", 24 * 30 * 4, minval=0)

# Load gate: attempts and pause between attempts
GATE_ATTEMPTS: int = _get_int_env("BREWERY_GATE_ATTEMPTS", 60, minval=1)
GATE_BACKOFF_SECONDS: float = _get_float_env("BREWERY_GATE_BACKOFF_SEC", 1.0, minval=0.0)

# ---------------- Runtime ----------------
LOG_LEVEL: str = os.getenv("BREWERY_LOG_LEVEL", "INFO").upper()

# Seconds between two ticks of the background runner
TICK_INTERVAL_SECONDS: float = _get_float_env("BREWERY_TICK_INTERVAL", 1.0, minval=0.05)
