"""Project settings loaded from pyproject.toml [tool.unit-discovery] section.

Settings:
  [tool.unit-discovery]
    max-workers      : threads in the blocking-work pool of one scan
    max-concurrency  : in-flight blocking calls (listing, zip reads, resolves)
    log-level        : default console level for the CLI

All settings support environment variable overrides (UNIT_DISCOVERY_* prefix).
"""

import importlib.resources
import os
from functools import cache
from pathlib import Path

import tomllib


@cache
def _load_pyproject_settings() -> dict:
    """Load settings from pyproject.toml [tool.unit-discovery] section.

    Returns:
        Dictionary of settings from pyproject.toml, empty dict if not found.
    """
    try:
        # Try package resources first (installed package)
        files = importlib.resources.files("unit_discovery")
        pyproject_path = files.joinpath("..", "pyproject.toml")

        # Walk up to find pyproject.toml (for development)
        if not pyproject_path.is_file():  # type: ignore[union-attr]
            current = Path(__file__).resolve().parent
            while current != current.parent:
                candidate = current / "pyproject.toml"
                if candidate.exists():
                    pyproject_path = candidate
                    break
                current = current.parent
            else:
                return {}

        content = pyproject_path.read_text()  # type: ignore[union-attr]
        data = tomllib.loads(content)
        return data.get("tool", {}).get("unit-discovery", {})
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _parse_bool(value: str | bool) -> bool:
    """Parse a boolean value from string or bool."""
    if isinstance(value, bool):
        return value
    return value.lower() in ("true", "1", "yes")


# ─── Scan tuning ───────────────────────────────────────────────────────────


def get_max_workers() -> int:
    """Get the thread count of the blocking-work pool used by one scan.

    Priority: UNIT_DISCOVERY_MAX_WORKERS env → max-workers → 16.
    """
    if env := os.getenv("UNIT_DISCOVERY_MAX_WORKERS"):
        return max(1, int(env))
    if (val := _load_pyproject_settings().get("max-workers")) is not None:
        return max(1, int(val))
    return 16


def get_max_concurrency() -> int:
    """Get the cap on in-flight blocking calls within one scan.

    Priority: UNIT_DISCOVERY_MAX_CONCURRENCY env → max-concurrency → 64.
    """
    if env := os.getenv("UNIT_DISCOVERY_MAX_CONCURRENCY"):
        return max(1, int(env))
    if (val := _load_pyproject_settings().get("max-concurrency")) is not None:
        return max(1, int(val))
    return 64


def get_log_level() -> str:
    """Get the default CLI console log level name.

    Priority: UNIT_DISCOVERY_LOG_LEVEL env → log-level → WARNING.
    """
    if env := os.getenv("UNIT_DISCOVERY_LOG_LEVEL"):
        return env.upper()
    return str(_load_pyproject_settings().get("log-level", "WARNING")).upper()


def get_use_rich() -> bool | None:
    """Get the explicit rich-output override, if any.

    Returns None when neither UNIT_DISCOVERY_RICH nor [tool.unit-discovery].rich
    is set, leaving the decision to terminal detection.
    """
    if env := os.getenv("UNIT_DISCOVERY_RICH"):
        return _parse_bool(env.strip())
    val = _load_pyproject_settings().get("rich")
    if val is not None:
        return _parse_bool(val)
    return None
