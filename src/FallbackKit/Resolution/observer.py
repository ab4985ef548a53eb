# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.observer",
#   "purpose": "Per-consumer view of a shared resolution.",
#   "sections": [
#     {
#       "id": "observerbinding",
#       "name": "ObserverBinding",
#       "anchor": "class-observerbinding",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Per-consumer view of a shared resolution.

An :class:`ObserverBinding` belongs to one consumer (a widget, a request
handler, ...). It tracks the consumer's current request identity, the cache
key of its candidate list, and exposes ``{loading, value, error}`` for it.

When the consumer asks for a different candidate list, the previous
subscription is severed and any outcome still arriving for the old key is
discarded. The underlying resolution keeps running for other subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, List, Optional

from .cache import CacheEntry, ResolutionCache
from .errors import InvalidInputError
from .loader import Loader
from .resolver import FallbackResolver
from .types import (
    CacheKey,
    DeliveryResult,
    ObserverState,
    Success,
    cache_key,
    normalize_candidates,
)

LOGGER = logging.getLogger(__name__)

StateListener = Callable[[ObserverState], Any]


class ObserverBinding:
    """
    Subscribes one consumer to the cache entry of its current request.

    Attributes:
        cache: ResolutionCache shared with other consumers
        loader: Loader used when this binding starts a resolution
        resolver: FallbackResolver used when this binding starts a resolution
    """

    def __init__(
        self,
        cache: ResolutionCache,
        loader: Loader,
        resolver: Optional[FallbackResolver] = None,
    ) -> None:
        self.cache = cache
        self.loader = loader
        self.resolver = resolver or FallbackResolver()
        self._key: Optional[CacheKey] = None
        self._entry: Optional[CacheEntry] = None
        self._state = ObserverState.idle()
        self._listeners: List[StateListener] = []
        self._waiters: List["asyncio.Future[ObserverState]"] = []

    def __repr__(self) -> str:
        return f"ObserverBinding(key={self._key!r}, status={self._state.status.value})"

    @property
    def state(self) -> ObserverState:
        return self._state

    @property
    def key(self) -> Optional[CacheKey]:
        """Cache key of the identity this binding currently represents."""
        return self._key

    def request(self, candidates: Iterable[Any]) -> ObserverState:
        """Bind the consumer to ``candidates``.

        Requesting the identity that is already bound is a no-op. An empty
        (or all-blank) list is rejected immediately with InvalidInputError
        and never reaches the cache. Resolutions are started on the running
        event loop.

        Returns:
            The state right after the request (LOADING or REJECTED, or the
            unchanged state for a repeated identity).
        """
        normalized = normalize_candidates(candidates)
        key = cache_key(normalized)
        if key == self._key:
            return self._state

        if not normalized:
            self._unbind()
            self._key = key
            LOGGER.debug("Rejecting request with no usable candidates")
            self._apply(ObserverState.rejected(key, InvalidInputError()))
            return self._state

        entry = self.cache.get_or_start(normalized, self.resolver, self.loader)
        self._unbind()
        self._key = key
        self._entry = entry
        self._apply(ObserverState.loading_for(key))
        entry.subscribe(self)
        return self._state

    def on_entry_settled(self, entry: CacheEntry) -> DeliveryResult:
        """Apply ``entry``'s outcome unless this binding has moved on."""
        if entry is not self._entry or entry.key != self._key:
            LOGGER.debug(f"Discarding stale result for {entry.key}")
            return DeliveryResult.STALE_RESULT_DISCARDED

        outcome = entry.outcome
        if outcome is None:
            raise RuntimeError(f"Entry {entry.key} delivered before settling")
        if isinstance(outcome, Success):
            self._apply(ObserverState.resolved(entry.key, outcome.identifier))
        else:
            self._apply(ObserverState.rejected(entry.key, outcome.error))
        return DeliveryResult.APPLIED

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state; returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def wait(self) -> ObserverState:
        """Wait until the currently bound identity settles.

        Follows identity switches: if the consumer requests another list
        while waiting, the wait ends with that list's outcome.
        """
        if not self._state.loading or self._key is None:
            return self._state
        waiter: "asyncio.Future[ObserverState]" = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def detach(self) -> None:
        """Stop observing. Late outcomes are discarded; waiters are released."""
        self._unbind()
        self._key = None
        self._release_waiters()

    def _unbind(self) -> None:
        if self._entry is not None:
            self._entry.unsubscribe(self)
            self._entry = None

    def _apply(self, state: ObserverState) -> None:
        self._state = state
        if not state.loading:
            self._release_waiters()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception(f"State listener failed for {state.key}")

    def _release_waiters(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(self._state)


__all__ = ["ObserverBinding", "StateListener"]
