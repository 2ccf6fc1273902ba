"""Automatic rich output detection for CLI commands.

Detection priority:
1. ``UNIT_DISCOVERY_RICH`` env var (or ``[tool.unit-discovery].rich``),
   an explicit override
2. ``NO_COLOR`` env var, standard convention, disables rich
3. ``CI`` env var disables rich
4. ``stdout.isatty()``: false in pipes, redirects and cron
"""

from __future__ import annotations

import os
import sys

from unit_discovery.settings import get_use_rich


def should_use_rich() -> bool:
    """Determine whether to render scan results as rich tables."""
    override = get_use_rich()
    if override is not None:
        return override

    # NO_COLOR convention (https://no-color.org/)
    if os.environ.get("NO_COLOR") is not None:
        return False

    if os.environ.get("CI"):
        return False

    try:
        if not sys.stdout.isatty():
            return False
    except (AttributeError, ValueError):
        return False

    return True
