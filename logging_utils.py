"""Tagged logging for looperbeats.

Every record names the component that emitted it, and structured fields
are appended after the message::

    looperbeats INFO [Looper] Loaded timing map | beats=2 bars=1

Per-frame callers log at DEBUG; the level check runs before any field
formatting so disabled calls stay cheap inside ``tick``.
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "looperbeats"

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(f"{LOGGER_NAME} %(levelname)s [%(component)s] %(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)


class _ComponentAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        component = kwargs.pop("component")
        kwargs.setdefault("extra", {})["component"] = component
        return msg, kwargs


_adapter = _ComponentAdapter(_logger, {})


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log ``message`` for component ``tag``, appending key=value fields."""
    level_val = logging.getLevelName(level.upper())
    if not isinstance(level_val, int):
        level_val = logging.INFO
    if not _logger.isEnabledFor(level_val):
        return
    if fields:
        message = f"{message} | " + " ".join(f"{k}={v}" for k, v in fields.items())
    _adapter.log(level_val, message, component=tag)


def set_log_level(level: str) -> None:
    """Apply a config level name; unknown names fall back to INFO."""
    level_val = logging.getLevelName((level or "INFO").upper())
    _logger.setLevel(level_val if isinstance(level_val, int) else logging.INFO)
