# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.cache",
#   "purpose": "Process-wide memoization of fallback resolutions.",
#   "sections": [
#     {
#       "id": "cachesubscriber",
#       "name": "CacheSubscriber",
#       "anchor": "class-cachesubscriber",
#       "kind": "class"
#     },
#     {
#       "id": "cacheentry",
#       "name": "CacheEntry",
#       "anchor": "class-cacheentry",
#       "kind": "class"
#     },
#     {
#       "id": "cachestats",
#       "name": "CacheStats",
#       "anchor": "class-cachestats",
#       "kind": "class"
#     },
#     {
#       "id": "resolutioncache",
#       "name": "ResolutionCache",
#       "anchor": "class-resolutioncache",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Process-wide memoization of fallback resolutions.

One :class:`CacheEntry` exists per distinct candidate list. The first
request for a key starts a single resolution task; every later request for
the same key, concurrent or not, shares that task and its outcome.

Design Notes
------------
- ``get_or_create`` never awaits between looking a key up and inserting
  the new entry, so with asyncio's cooperative scheduling two requests for
  the same key cannot both start a resolution.
- Settled entries are never refreshed. A cached ``Failure`` is final for
  the key until :meth:`ResolutionCache.clear` is called.
- A resolution task that is cancelled or crashes settles as
  ``Failure(ResolutionAbortedError)`` for the subscribers that were
  waiting, and its entry leaves the cache so the next request starts over.
- Entries hold subscribers weakly; the cache owns entries, subscribers do
  not.
- Subscribing to an already settled entry delivers on the next loop
  iteration (``call_soon``), never inline.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Protocol

from .errors import ResolutionAbortedError
from .loader import Loader
from .resolver import FallbackResolver, ResolutionRun
from .types import CacheKey, Candidate, CandidateList, Failure, ResolutionOutcome, Success

LOGGER = logging.getLogger(__name__)

ResolutionFactory = Callable[[], Coroutine[Any, Any, ResolutionOutcome]]


class CacheSubscriber(Protocol):
    """Receives the settled entry exactly once per subscription."""

    def on_entry_settled(self, entry: "CacheEntry") -> Any: ...


class CacheEntry:
    """A single in-flight or completed resolution for one cache key.

    Attributes:
        key: Cache key of the candidate list
        candidates: The normalized candidate list being resolved
        run: ResolutionRun driven by the entry's task, when started through
            :meth:`ResolutionCache.get_or_start`
        created_at: Epoch seconds when the entry was created
        settled_at: Epoch seconds when the outcome became available
        subscribers: Weak set of current subscribers
    """

    def __init__(
        self,
        key: CacheKey,
        candidates: Iterable[Candidate] = (),
        run: Optional[ResolutionRun] = None,
    ) -> None:
        self.key = key
        self.candidates: CandidateList = tuple(candidates)
        self.run = run
        self.created_at = time.time()
        self.settled_at: Optional[float] = None
        self.subscribers: "weakref.WeakSet[Any]" = weakref.WeakSet()
        self._task: Optional[asyncio.Task[ResolutionOutcome]] = None
        self._outcome: Optional[ResolutionOutcome] = None
        self._error_tb: Optional[TracebackType] = None
        self._on_abort: Optional[Callable[["CacheEntry"], None]] = None

    def __repr__(self) -> str:
        state = self._outcome.kind if self._outcome is not None else "pending"
        return f"CacheEntry(key={self.key!r}, state={state}, subscribers={len(self.subscribers)})"

    @property
    def done(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> Optional[ResolutionOutcome]:
        return self._outcome

    @property
    def aborted(self) -> bool:
        """True when the task stopped without producing an outcome of its own."""
        return isinstance(self._outcome, Failure) and isinstance(
            self._outcome.error, ResolutionAbortedError
        )

    def _start(self, loop: asyncio.AbstractEventLoop, factory: ResolutionFactory) -> None:
        self._task = loop.create_task(factory())
        self._task.add_done_callback(self._settle)

    def _settle(self, task: "asyncio.Task[ResolutionOutcome]") -> None:
        if task.cancelled():
            LOGGER.warning(f"Resolution for {self.key} was cancelled")
            error = ResolutionAbortedError(self.key, cancelled=True)
            error.__cause__ = asyncio.CancelledError(f"resolution for {self.key} cancelled")
            outcome: ResolutionOutcome = Failure(error)
        else:
            exc = task.exception()
            if exc is not None:
                LOGGER.error(f"Resolution for {self.key} crashed: {exc}", exc_info=exc)
                error = ResolutionAbortedError(self.key, cancelled=False)
                error.__cause__ = exc
                outcome = Failure(error)
            else:
                outcome = task.result()

        self._outcome = outcome
        if isinstance(outcome, Failure):
            self._error_tb = outcome.error.__traceback__
        self.settled_at = time.time()
        if self.aborted and self._on_abort is not None:
            self._on_abort(self)
        for subscriber in list(self.subscribers):
            self._notify(subscriber)

    def _notify(self, subscriber: CacheSubscriber) -> None:
        try:
            subscriber.on_entry_settled(self)
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception(f"Subscriber of {self.key} failed to handle the outcome")

    def _notify_if_subscribed(self, subscriber: CacheSubscriber) -> None:
        if subscriber in self.subscribers:
            self._notify(subscriber)

    def _require_outcome(self) -> ResolutionOutcome:
        if self._outcome is None:
            raise RuntimeError(f"Resolution for {self.key} has no outcome yet")
        return self._outcome

    def subscribe(self, subscriber: CacheSubscriber) -> None:
        """Register ``subscriber`` for the outcome.

        Settled entries deliver on the next event-loop iteration, so callers
        observe the same ordering as for a fresh resolution.
        """
        self.subscribers.add(subscriber)
        if self.done:
            asyncio.get_running_loop().call_soon(self._notify_if_subscribed, subscriber)

    def unsubscribe(self, subscriber: CacheSubscriber) -> None:
        """Drop ``subscriber``; a pending delivery to it is cancelled."""
        self.subscribers.discard(subscriber)

    async def wait(self) -> ResolutionOutcome:
        """Wait for the shared outcome.

        Cancelling the waiter never cancels the shared resolution.

        Raises:
            RuntimeError: The entry was never started, or its task finished
                without settling the entry
        """
        if self._outcome is None:
            if self._task is None:
                raise RuntimeError(f"Resolution for {self.key} was never started")
            await asyncio.wait({self._task})
        return self._require_outcome()

    def result(self) -> Candidate:
        """Return the winning identifier or raise the cached error.

        The error is raised with the traceback it had when the entry
        settled, so raising it again and again does not grow it.

        Raises:
            ResolutionError: The cached failure
            RuntimeError: The entry has not settled
        """
        outcome = self._require_outcome()
        if isinstance(outcome, Success):
            return outcome.identifier
        raise outcome.error.with_traceback(self._error_tb)


@dataclass(frozen=True)
class CacheStats:
    """Counters describing cache usage."""

    hits: int
    misses: int
    entries: int
    pending: int


class ResolutionCache:
    """
    Maps cache keys to shared resolutions.

    The cache is an explicit service: construct one per application context
    (the package wires a process-wide default) and call :meth:`clear` for
    test isolation.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> List[CacheKey]:
        return list(self._entries)

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def get_or_create(
        self,
        key: CacheKey,
        factory: ResolutionFactory,
        candidates: Iterable[Candidate] = (),
        run: Optional[ResolutionRun] = None,
    ) -> CacheEntry:
        """Return the entry for ``key``, starting ``factory`` on a miss.

        ``factory`` is invoked at most once per key for the lifetime of the
        cache (until :meth:`clear`), unless the task it started is aborted.
        Must be called from a running event loop.

        Args:
            key: Cache key of the candidate list
            factory: Zero-argument callable returning the resolution coroutine
            candidates: Candidate list recorded on a new entry
            run: ResolutionRun recorded on a new entry

        Returns:
            The shared CacheEntry
        """
        entry = self._entries.get(key)
        if entry is not None:
            self._hits += 1
            LOGGER.debug(f"Resolution cache hit for {key}", extra={"cache_key": key})
            return entry

        loop = asyncio.get_running_loop()
        entry = CacheEntry(key, candidates, run)
        entry._on_abort = self._discard
        self._entries[key] = entry
        self._misses += 1
        try:
            entry._start(loop, factory)
        except BaseException:
            del self._entries[key]
            raise
        LOGGER.debug(
            f"Resolution cache miss for {key}, started resolution", extra={"cache_key": key}
        )
        return entry

    def get_or_start(
        self,
        candidates: Iterable[Any],
        resolver: FallbackResolver,
        loader: Loader,
    ) -> CacheEntry:
        """Return the entry for ``candidates``, resolving them on a miss.

        A new entry carries its own ResolutionRun, so its state and probing
        index can be read per key even when one resolver serves many lists.
        """
        run = ResolutionRun.create(candidates)
        return self.get_or_create(
            run.key,
            lambda: resolver.execute(run, loader),
            candidates=run.candidates,
            run=run,
        )

    def _discard(self, entry: CacheEntry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
            LOGGER.debug(
                f"Dropped aborted resolution for {entry.key}", extra={"cache_key": entry.key}
            )

    def stats(self) -> CacheStats:
        pending = sum(1 for entry in self._entries.values() if not entry.done)
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            entries=len(self._entries),
            pending=pending,
        )

    def clear(self) -> None:
        """Forget every entry.

        In-flight resolutions keep running for their current subscribers but
        are no longer reachable through the cache.
        """
        self._entries.clear()
        self._hits = 0
        self._misses = 0


__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheSubscriber",
    "ResolutionCache",
    "ResolutionFactory",
]
