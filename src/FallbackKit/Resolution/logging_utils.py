"""
Logging setup for FallbackKit.

``setup_logging`` owns the handlers on the ``FallbackKit`` logger: a console
handler always, plus a size-rotated JSON-lines file when
``LoggingConfig.json_path`` is set. Records logged with ``extra={"candidate":
...}`` or ``extra={"cache_key": ...}`` keep those fields in the JSON output.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config.models import LoggingConfig

ROOT_LOGGER_NAME = "FallbackKit"

_EXTRA_FIELDS = ("candidate", "cache_key")
_MANAGED_ATTR = "_fallbackkit_managed"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object.

    Examples:
        >>> record = logging.makeLogRecord({"msg": "probe failed", "cache_key": '["a"]'})
        >>> json.loads(JSONFormatter().format(record))["cache_key"]
        '["a"]'
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _managed(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _MANAGED_ATTR, True)
    return handler


def _drop_managed_handlers(logger: logging.Logger) -> None:
    for handler in [h for h in logger.handlers if getattr(h, _MANAGED_ATTR, False)]:
        logger.removeHandler(handler)
        handler.close()


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    handlers: List[logging.Handler] = [console]

    if config.json_path:
        target = Path(config.json_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            target,
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        rotating.setFormatter(JSONFormatter())
        handlers.append(rotating)
    return handlers


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Install FallbackKit's handlers, replacing those of an earlier call.

    Handlers added by other code are left alone.

    Args:
        config: Logging configuration; defaults to ``LoggingConfig()``.

    Returns:
        The ``FallbackKit`` logger.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.getLevelName(config.level))

    _drop_managed_handlers(logger)
    for handler in _build_handlers(config):
        logger.addHandler(_managed(handler))
    return logger


__all__ = ["JSONFormatter", "ROOT_LOGGER_NAME", "setup_logging"]
