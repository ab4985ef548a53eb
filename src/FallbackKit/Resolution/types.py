"""Core types for fallback resolution.

This module defines the value objects shared by the resolver, the
resolution cache and the observer binding:

- ``normalize_candidates``/``cache_key``: candidate list identity
- ProbeResult: outcome of a single Loader probe
- Success/Failure: the tagged ResolutionOutcome variant
- ObserverState: the ``{loading, value, error}`` surface a consumer reads
- BindingState/DeliveryResult: observer state machine and delivery policy

All value types are frozen dataclasses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Literal, Optional, Tuple, Union

Candidate = str
CandidateList = Tuple[Candidate, ...]
CacheKey = str

# ============================================================================
# Candidate identity
# ============================================================================


def is_blank(candidate: Any) -> bool:
    """Return True when ``candidate`` cannot identify a resource."""
    return not isinstance(candidate, str) or not candidate.strip()


def normalize_candidates(candidates: Optional[Iterable[Any]]) -> CandidateList:
    """Drop blank entries while keeping order and the exact candidate text.

    Args:
        candidates: Ordered candidate identifiers; ``None`` and non-string
            entries are treated as blank.

    Returns:
        Immutable ordered tuple of the usable candidates (may be empty).

    Example:
        ```python
        >>> normalize_candidates(["", "a.png", None, "  ", "b.png"])
        ('a.png', 'b.png')
        ```
    """
    if candidates is None:
        return ()
    if isinstance(candidates, str):
        candidates = (candidates,)
    return tuple(c for c in candidates if not is_blank(c))


def cache_key(candidates: Iterable[Candidate]) -> CacheKey:
    """Derive the deterministic cache identity of a candidate list.

    The key is the compact JSON array of the candidates, so order and
    composition both matter and ``["ab", "c"]`` never collides with
    ``["a", "bc"]``.
    """
    return json.dumps(list(candidates), separators=(",", ":"), ensure_ascii=False)


# ============================================================================
# ProbeResult: outcome of one Loader probe
# ============================================================================


@dataclass(frozen=True)
class ProbeResult:
    """Result of probing a single candidate.

    Attributes:
        candidate: The probed identifier
        ok: Whether the candidate loaded successfully
        reason: Short reason code for failures (e.g. "http_404", "timeout")
        status: HTTP status code if applicable
        content_type: Response content type if applicable
        elapsed_ms: Wall-clock time spent probing
        error: Underlying exception, when the failure came from one
        meta: Additional loader-specific metadata

    Example:
        ```python
        ok = ProbeResult.succeeded("https://example.org/a.png", status=200)
        bad = ProbeResult.failed("https://example.org/b.png", "http_404", status=404)
        ```
    """

    candidate: Candidate = field()
    ok: bool = field()
    reason: Optional[str] = field(default=None)
    status: Optional[int] = field(default=None)
    content_type: Optional[str] = field(default=None)
    elapsed_ms: int = field(default=0)
    error: Optional[BaseException] = field(default=None, compare=False)
    meta: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        """Validate result integrity."""
        if self.ok and self.reason is not None:
            msg = f"successful probe should not carry a failure reason, got {self.reason!r}"
            raise ValueError(msg)
        if not self.ok and not self.reason:
            msg = "failed probe requires a reason"
            raise ValueError(msg)
        if self.elapsed_ms < 0:
            msg = f"elapsed_ms must be non-negative, got {self.elapsed_ms}"
            raise ValueError(msg)

    @classmethod
    def succeeded(cls, candidate: Candidate, **kwargs: Any) -> "ProbeResult":
        return cls(candidate=candidate, ok=True, **kwargs)

    @classmethod
    def failed(cls, candidate: Candidate, reason: str, **kwargs: Any) -> "ProbeResult":
        return cls(candidate=candidate, ok=False, reason=reason, **kwargs)


# ============================================================================
# ResolutionOutcome: tagged Success | Failure
# ============================================================================


@dataclass(frozen=True)
class Success:
    """The winning candidate of a resolution."""

    identifier: Candidate
    index: int = 0
    kind: Literal["success"] = field(default="success", init=False)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """A terminal resolution failure.

    ``error`` is an ``InvalidInputError`` or an ``AllCandidatesFailedError``
    for ordinary failures, and a ``ResolutionAbortedError`` when the
    resolution task itself crashed or was cancelled.
    """

    error: BaseException
    kind: Literal["failure"] = field(default="failure", init=False)

    @property
    def ok(self) -> bool:
        return False


ResolutionOutcome = Union[Success, Failure]


# ============================================================================
# Observer state
# ============================================================================


class BindingState(str, Enum):
    """Lifecycle of an observer binding."""

    IDLE = "idle"
    LOADING = "loading"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class DeliveryResult(str, Enum):
    """What an observer did with a delivered outcome."""

    APPLIED = "applied"
    STALE_RESULT_DISCARDED = "stale_result_discarded"


@dataclass(frozen=True)
class ObserverState:
    """Snapshot of a consumer's view of its current request."""

    status: BindingState = BindingState.IDLE
    key: Optional[CacheKey] = None
    loading: bool = False
    value: Optional[Candidate] = None
    error: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def idle(cls) -> "ObserverState":
        return cls()

    @classmethod
    def loading_for(cls, key: CacheKey) -> "ObserverState":
        return cls(status=BindingState.LOADING, key=key, loading=True)

    @classmethod
    def resolved(cls, key: CacheKey, identifier: Candidate) -> "ObserverState":
        return cls(status=BindingState.RESOLVED, key=key, value=identifier)

    @classmethod
    def rejected(cls, key: Optional[CacheKey], error: BaseException) -> "ObserverState":
        return cls(status=BindingState.REJECTED, key=key, error=error)

    @property
    def settled(self) -> bool:
        return self.status in (BindingState.RESOLVED, BindingState.REJECTED)


__all__ = [
    "BindingState",
    "CacheKey",
    "Candidate",
    "CandidateList",
    "DeliveryResult",
    "Failure",
    "ObserverState",
    "ProbeResult",
    "ResolutionOutcome",
    "Success",
    "cache_key",
    "is_blank",
    "normalize_candidates",
]
