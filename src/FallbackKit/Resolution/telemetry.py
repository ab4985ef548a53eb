"""Attempt telemetry sinks for fallback resolution.

The resolver emits one ``fallback_attempt`` event per probe and one
``fallback_resolution`` event per run. Sinks receive plain dictionaries so
they can be serialised without knowing the resolver's types.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, TextIO, runtime_checkable

from .config.models import TelemetryConfig

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class TelemetrySink(Protocol):
    """Anything accepting resolver events."""

    def emit(self, event: Dict[str, Any]) -> None: ...


class JsonlTelemetrySink:
    """Append telemetry events to a JSON-lines file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._fh: Optional[TextIO] = self.path.open("a", encoding="utf-8")

    def emit(self, event: Dict[str, Any]) -> None:
        payload = {"ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}
        payload.update(event)
        line = json.dumps(payload, sort_keys=True, default=str)
        with self._lock:
            if self._fh is None:
                raise ValueError(f"telemetry sink {self.path} is closed")
            self._fh.write(line + "\n")
            self._fh.flush()

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None

    def __enter__(self) -> "JsonlTelemetrySink":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def build_telemetry(config: TelemetryConfig) -> Optional[JsonlTelemetrySink]:
    """Return the sink described by ``config``, or None when telemetry is off."""
    if not config.jsonl_path:
        return None
    LOGGER.debug(f"Writing fallback telemetry to {config.jsonl_path}")
    return JsonlTelemetrySink(config.jsonl_path)


__all__ = ["JsonlTelemetrySink", "TelemetrySink", "build_telemetry"]
