"""Scripted collaborators for resolution tests."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List

from FallbackKit.Resolution.types import ProbeResult


class ScriptedLoader:
    """Loader whose outcome per candidate is fixed up front.

    Candidates listed in ``gated`` block until :meth:`release` is called,
    which lets tests interleave requests with in-flight probes.
    """

    def __init__(
        self,
        succeed: Iterable[str] = (),
        *,
        gated: Iterable[str] = (),
        raise_for: Iterable[str] = (),
    ) -> None:
        self.succeed = set(succeed)
        self.gated = set(gated)
        self.raise_for = set(raise_for)
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0
        self._gates: Dict[str, asyncio.Event] = {}

    def _gate(self, candidate: str) -> asyncio.Event:
        if candidate not in self._gates:
            self._gates[candidate] = asyncio.Event()
        return self._gates[candidate]

    def release(self, candidate: str) -> None:
        self._gate(candidate).set()

    async def probe(self, candidate: str) -> ProbeResult:
        self.calls.append(candidate)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if candidate in self.gated:
                await self._gate(candidate).wait()
            else:
                await asyncio.sleep(0)
            if candidate in self.raise_for:
                raise RuntimeError(f"loader exploded on {candidate}")
            if candidate in self.succeed:
                return ProbeResult.succeeded(candidate, status=200, content_type="image/png")
            return ProbeResult.failed(candidate, "http_404", status=404)
        finally:
            self.active -= 1


class RecordingSink:
    """Collect telemetry events emitted during tests."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    def emit(self, event: Dict[str, Any]) -> None:
        self.events.append(dict(event))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]


class ExplodingSink:
    """Telemetry sink that always fails."""

    def emit(self, event: Dict[str, Any]) -> None:
        raise OSError("disk full")


async def settle(rounds: int = 10) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
