"""Scan configuration: per-scan options and container layout defaults."""

from unit_discovery.config.scan_config import (
    LayoutConfig,
    ScanConfiguration,
    clear_config_cache,
    get_layout_config,
)

__all__ = [
    "LayoutConfig",
    "ScanConfiguration",
    "clear_config_cache",
    "get_layout_config",
]
