"""Root logger setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Repeated calls only adjust the level, so building several app instances
    (as the test suite does) never duplicates log lines.
    """
    global _configured

    resolved_level = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
