# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.resolver",
#   "purpose": "Sequential fallback resolver.",
#   "sections": [
#     {
#       "id": "resolverstate",
#       "name": "ResolverState",
#       "anchor": "class-resolverstate",
#       "kind": "class"
#     },
#     {
#       "id": "resolutionrun",
#       "name": "ResolutionRun",
#       "anchor": "class-resolutionrun",
#       "kind": "class"
#     },
#     {
#       "id": "fallbackresolver",
#       "name": "FallbackResolver",
#       "anchor": "class-fallbackresolver",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Sequential Fallback Resolver

Resolves an ordered candidate list to the first candidate that loads:
- Strictly sequential probing, at most one probe in flight per run
- Early exit on the first success; later candidates are never started
- Per-candidate failures recovered locally by advancing to the next one
- Aggregate ``AllCandidatesFailedError`` once the list is exhausted
- Per-attempt telemetry emission

Design:
- Each run is an explicit state machine
  (IDLE → PROBING(index) → RESOLVED | REJECTED)
- Loader protocol (``async probe(candidate) -> ProbeResult``)
- ``run()`` always returns a ResolutionOutcome; loader misbehaviour is
  converted into an ordinary candidate failure
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .errors import AllCandidatesFailedError, InvalidInputError, PerCandidateLoadError
from .loader import Loader
from .telemetry import TelemetrySink
from .types import (
    CacheKey,
    Candidate,
    CandidateList,
    Failure,
    ProbeResult,
    ResolutionOutcome,
    Success,
    cache_key,
    normalize_candidates,
)

LOGGER = logging.getLogger(__name__)


class ResolverState(str, Enum):
    """States of a single resolution run."""

    IDLE = "idle"
    PROBING = "probing"
    RESOLVED = "resolved"
    REJECTED = "rejected"


_TRANSITIONS = {
    ResolverState.IDLE: {ResolverState.PROBING, ResolverState.REJECTED},
    ResolverState.PROBING: {ResolverState.PROBING, ResolverState.RESOLVED, ResolverState.REJECTED},
    ResolverState.RESOLVED: set(),
    ResolverState.REJECTED: set(),
}


@dataclass
class ResolutionRun:
    """Mutable record of one pass over a candidate list.

    Attributes:
        candidates: Normalized candidate list
        key: Cache key of ``candidates``
        state: Current ResolverState
        index: Index of the candidate being (or last) probed
        attempts: ProbeResults in probe order
        outcome: Final outcome once RESOLVED or REJECTED
    """

    candidates: CandidateList
    key: CacheKey
    state: ResolverState = ResolverState.IDLE
    index: Optional[int] = None
    attempts: List[ProbeResult] = field(default_factory=list)
    outcome: Optional[ResolutionOutcome] = None
    started_at: Optional[float] = None

    @classmethod
    def create(cls, candidates: Iterable[Any]) -> "ResolutionRun":
        normalized = normalize_candidates(candidates)
        return cls(candidates=normalized, key=cache_key(normalized))

    def transition(self, new_state: ResolverState, index: Optional[int] = None) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid resolver transition {self.state.value} → {new_state.value}")
        self.state = new_state
        if index is not None:
            self.index = index

    @property
    def elapsed_ms(self) -> int:
        if self.started_at is None:
            return 0
        return int((time.monotonic() - self.started_at) * 1000)


class FallbackResolver:
    """
    Resolves candidate lists by probing candidates in order.

    Attributes:
        telemetry: Optional telemetry sink receiving attempt events
        last_run: The most recently started ResolutionRun
        logger: Logger instance

    One resolver may drive several runs at once (the process-wide default
    serves every candidate list). ``last_run``, ``state`` and
    ``probing_index`` describe only the run started last; the run of a
    particular list is kept on its cache entry as ``CacheEntry.run``.
    """

    def __init__(
        self,
        telemetry: Optional[TelemetrySink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.telemetry = telemetry
        self.logger = logger or LOGGER
        self.last_run: Optional[ResolutionRun] = None

    @property
    def state(self) -> ResolverState:
        """State of the most recently started run (IDLE before any run)."""
        return self.last_run.state if self.last_run is not None else ResolverState.IDLE

    @property
    def probing_index(self) -> Optional[int]:
        """Index being probed by the most recently started run."""
        return self.last_run.index if self.last_run is not None else None

    async def run(self, candidates: Iterable[Any], loader: Loader) -> ResolutionOutcome:
        """Resolve ``candidates`` using ``loader``.

        Args:
            candidates: Ordered candidate identifiers (blanks are dropped)
            loader: Loader used to probe each candidate

        Returns:
            ``Success`` for the first candidate that loads, otherwise
            ``Failure`` carrying ``InvalidInputError`` (nothing to probe) or
            ``AllCandidatesFailedError``.
        """
        return await self.execute(ResolutionRun.create(candidates), loader)

    async def execute(self, run: ResolutionRun, loader: Loader) -> ResolutionOutcome:
        """Drive ``run`` to completion. A run can only be executed once."""
        self.last_run = run
        run.started_at = time.monotonic()

        if not run.candidates:
            run.transition(ResolverState.REJECTED)
            run.outcome = Failure(InvalidInputError())
            self.logger.debug("Rejected resolution: no usable candidates")
            return run.outcome

        self.logger.debug(f"Starting fallback resolution over {len(run.candidates)} candidate(s)")

        failures: List[PerCandidateLoadError] = []
        index = 0
        run.transition(ResolverState.PROBING, index)
        while True:
            candidate = run.candidates[index]
            result = await self._probe(loader, candidate)
            run.attempts.append(result)
            self._emit(
                {
                    "event_type": "fallback_attempt",
                    "cache_key": run.key,
                    "candidate": candidate,
                    "index": index,
                    "ok": result.ok,
                    "reason": result.reason,
                    "status": result.status,
                    "elapsed_ms": result.elapsed_ms,
                }
            )

            if result.ok:
                run.transition(ResolverState.RESOLVED)
                run.outcome = Success(identifier=candidate, index=index)
                self.logger.debug(
                    f"Resolved to candidate {index} ({candidate}) after {len(run.attempts)} probe(s)"
                )
                break

            failures.append(
                PerCandidateLoadError(
                    candidate,
                    result.reason or "load_failed",
                    status=result.status,
                    cause=result.error,
                )
            )
            self.logger.debug(f"Candidate {index} ({candidate}) failed: {result.reason}")

            if index + 1 < len(run.candidates):
                index += 1
                run.transition(ResolverState.PROBING, index)
                continue

            run.transition(ResolverState.REJECTED)
            run.outcome = Failure(AllCandidatesFailedError(run.candidates, failures))
            self.logger.warning(
                f"All {len(run.candidates)} candidate(s) failed: "
                f"{', '.join(f.reason for f in failures)}",
                extra={"cache_key": run.key},
            )
            break

        self._emit(
            {
                "event_type": "fallback_resolution",
                "cache_key": run.key,
                "outcome": run.outcome.kind,
                "winner": run.outcome.identifier if isinstance(run.outcome, Success) else None,
                "attempts": len(run.attempts),
                "elapsed_ms": run.elapsed_ms,
            }
        )
        return run.outcome

    async def _probe(self, loader: Loader, candidate: Candidate) -> ProbeResult:
        """Probe one candidate, converting loader misbehaviour into a failure."""
        try:
            result = await loader.probe(candidate)
        except Exception as e:  # pylint: disable=broad-except
            self.logger.warning(
                f"Loader raised while probing {candidate}: {e}", extra={"candidate": candidate}
            )
            return ProbeResult.failed(candidate, "loader_exception", error=e)

        if not isinstance(result, ProbeResult):
            self.logger.warning(
                f"Loader returned {type(result).__name__} for {candidate}, expected ProbeResult"
            )
            return ProbeResult.failed(candidate, "invalid_probe_result")
        return result

    def _emit(self, event: Dict[str, Any]) -> None:
        """Emit a telemetry event; sink failures never affect resolution."""
        if self.telemetry is None:
            return

        try:
            self.telemetry.emit(event)
        except Exception as e:  # pylint: disable=broad-except
            self.logger.warning(f"Telemetry emission failed: {e}")


__all__ = ["FallbackResolver", "ResolutionRun", "ResolverState"]
