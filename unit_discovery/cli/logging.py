"""CLI logging configuration with file output.

Provides ``configure_cli_logging`` which sets up both console and file
logging for CLI commands. Log files live under
``~/.local/share/unit-discovery/logs/``, one per command::

    scan.log

Follow a running scan with::

    tail -f ~/.local/share/unit-discovery/logs/scan.log
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from unit_discovery.settings import get_log_level

# Standard log directory follows XDG convention
LOG_DIR = Path.home() / ".local" / "share" / "unit-discovery" / "logs"

PACKAGE_LOGGER = "unit_discovery"


def get_log_dir() -> Path:
    """Return the CLI log directory, creating it if needed."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR


def get_log_file(command: str) -> Path:
    return get_log_dir() / f"{command}.log"


def configure_cli_logging(
    command: str,
    *,
    verbose: bool = False,
    console_level: int | None = None,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 3,
) -> Path:
    """Configure logging for a CLI command with file output.

    Sets up:
    - File handler: DEBUG-level rotating log at
      ``~/.local/share/unit-discovery/logs/<command>.log``
    - Console handler on stderr: the configured log level (WARNING by
      default), or INFO when ``verbose``

    Args:
        command: CLI command name (e.g., "scan")
        verbose: If True, set console to INFO level
        console_level: Override console level (takes precedence over verbose)
        file_level: File log level (default: DEBUG)
        max_bytes: Max size per log file before rotation
        backup_count: Number of rotated backups to keep

    Returns:
        Path to the log file
    """
    log_file = get_log_file(command)

    root_logger = logging.getLogger(PACKAGE_LOGGER)

    # Remove handlers from earlier calls to avoid duplicates
    for handler in root_logger.handlers[:]:
        if getattr(handler, "_unit_discovery_cli", False):
            root_logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    if console_level is None:
        if verbose:
            console_level = logging.INFO
        else:
            console_level = logging.getLevelNamesMapping().get(
                get_log_level(), logging.WARNING
            )
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter("%(levelname)s %(name)s: %(message)s")
    )
    console_handler.setLevel(console_level)

    for handler in (file_handler, console_handler):
        handler._unit_discovery_cli = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)

    # NOTSET would inherit WARNING from the root logger and starve the file
    threshold = min(file_level, console_level)
    if root_logger.level == logging.NOTSET or root_logger.level > threshold:
        root_logger.setLevel(threshold)

    return log_file
