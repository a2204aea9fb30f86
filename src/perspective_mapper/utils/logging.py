"""Loguru sink setup driven by the logging section of the configuration."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from perspective_mapper.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> int:
    """Replace the default loguru sink with the configured one.

    ``output`` is ``stdout``, ``stderr`` or a file path. Returns the sink id.
    """
    logger.remove()
    output = config.output.lower()
    level = config.level.upper()
    if output == "stdout":
        return logger.add(sys.stdout, level=level)
    if output == "stderr":
        return logger.add(sys.stderr, level=level)
    path = Path(config.output)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logger.add(path, level=level, rotation="10 MB")
