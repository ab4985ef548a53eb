# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.errors",
#   "purpose": "Error taxonomy for fallback resolution.",
#   "sections": [
#     {
#       "id": "resolutionerror",
#       "name": "ResolutionError",
#       "anchor": "class-resolutionerror",
#       "kind": "class"
#     },
#     {
#       "id": "invalidinputerror",
#       "name": "InvalidInputError",
#       "anchor": "class-invalidinputerror",
#       "kind": "class"
#     },
#     {
#       "id": "percandidateloaderror",
#       "name": "PerCandidateLoadError",
#       "anchor": "class-percandidateloaderror",
#       "kind": "class"
#     },
#     {
#       "id": "allcandidatesfailederror",
#       "name": "AllCandidatesFailedError",
#       "anchor": "class-allcandidatesfailederror",
#       "kind": "class"
#     },
#     {
#       "id": "resolutionabortederror",
#       "name": "ResolutionAbortedError",
#       "anchor": "class-resolutionabortederror",
#       "kind": "class"
#     },
#     {
#       "id": "configurationerror",
#       "name": "ConfigurationError",
#       "anchor": "class-configurationerror",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for fallback resolution.

Responsibilities
----------------
- ``InvalidInputError``: the candidate list is empty once blanks are
  dropped. Surfaced to the requester immediately; nothing is probed.
- ``PerCandidateLoadError``: one candidate failed to load. Consumed inside
  the resolver as control flow and recorded on the aggregate failure.
- ``AllCandidatesFailedError``: every candidate failed. Terminal, shared
  by every subscriber of the cache entry and cached for the key.
- ``ResolutionAbortedError``: the shared resolution task was cancelled or
  crashed before producing an outcome. Delivered to the subscribers that
  were waiting; the entry is then dropped so a later request resolves
  again.
- ``ConfigurationError``: configuration files that cannot be read or parsed.

Consumers only ever see ``ResolutionError`` subclasses; the exception
that aborted a resolution is kept as ``__cause__``.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

__all__ = (
    "ResolutionError",
    "InvalidInputError",
    "PerCandidateLoadError",
    "AllCandidatesFailedError",
    "ResolutionAbortedError",
    "ConfigurationError",
)


class ResolutionError(Exception):
    """Base class for resolution failures."""


class InvalidInputError(ResolutionError, ValueError):
    """Raised when no usable candidate remains after dropping blanks."""

    def __init__(self, message: str = "candidate list is empty after filtering blanks") -> None:
        super().__init__(message)


class PerCandidateLoadError(ResolutionError):
    """A single candidate's probe failed."""

    def __init__(
        self,
        candidate: str,
        reason: str,
        *,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.candidate = candidate
        self.reason = reason
        self.status = status
        self.cause = cause
        super().__init__(f"Failed to load {candidate!r}: {reason}")


class AllCandidatesFailedError(ResolutionError):
    """Every candidate of a list failed to load."""

    def __init__(
        self,
        candidates: Sequence[str],
        failures: Sequence[PerCandidateLoadError] = (),
    ) -> None:
        self.candidates: Tuple[str, ...] = tuple(candidates)
        self.failures: Tuple[PerCandidateLoadError, ...] = tuple(failures)
        super().__init__(f"All {len(self.candidates)} candidate(s) failed to load")

    @property
    def reasons(self) -> Tuple[str, ...]:
        return tuple(failure.reason for failure in self.failures)


class ResolutionAbortedError(ResolutionError):
    """The shared resolution stopped without an outcome.

    Attributes:
        key: Cache key of the aborted resolution
        cancelled: True when the task was cancelled rather than crashed
    """

    def __init__(self, key: str, *, cancelled: bool) -> None:
        self.key = key
        self.cancelled = cancelled
        what = "cancelled" if cancelled else "crashed"
        super().__init__(f"Resolution of {key} was {what} before it settled")


class ConfigurationError(ValueError):
    """Raised when configuration is invalid."""

    pass
