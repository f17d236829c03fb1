"""Logging setup shared by the scanner CLI and the web service.

Modules log through ``get_logger("superthanks.<area>")``; only an entrypoint
calls ``configure_logging`` to send the ``superthanks`` tree to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

ROOT_LOGGER_NAME = "superthanks"
LEVEL_ENV_VAR = "SUPERTHANKS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def parse_level(level: Optional[Union[int, str]]) -> int:
    """Level name or number; falls back to ``SUPERTHANKS_LOG_LEVEL``, then INFO."""
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LEVEL_ENV_VAR) or "").strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None) if name else None
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """Send the ``superthanks`` tree to the current stderr.

    Calling it again only updates the level and stream, so there is never
    more than one handler.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(parse_level(level))
    root.propagate = False
    for handler in root.handlers:
        if getattr(handler, "name", None) == ROOT_LOGGER_NAME:
            handler.setStream(sys.stderr)
            return
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(ROOT_LOGGER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
