"""Public entry points and process-wide default wiring.

``request_resolution`` returns an :class:`ObserverBinding` for UI-style
consumers that render ``{loading, value, error}``; ``resolve`` awaits the
winning identifier directly. Both share the same cache, so identical
candidate lists are resolved once.

Example:
    ```python
    from FallbackKit.Resolution import request_resolution, resolve

    binding = request_resolution(["https://cdn-a/x.png", "https://cdn-b/x.png"])
    state = await binding.wait()

    url = await resolve(["https://cdn-a/x.png", "https://cdn-b/x.png"])
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from .cache import ResolutionCache
from .config import FallbackKitConfig, load_config
from .errors import InvalidInputError
from .loader import Loader, build_default_loader
from .logging_utils import setup_logging
from .observer import ObserverBinding, StateListener
from .resolver import FallbackResolver
from .telemetry import JsonlTelemetrySink, build_telemetry
from .types import Candidate, normalize_candidates

LOGGER = logging.getLogger(__name__)

_DEFAULT_CACHE: Optional[ResolutionCache] = None
_DEFAULT_LOADER: Optional[Loader] = None
_DEFAULT_RESOLVER: Optional[FallbackResolver] = None
_DEFAULT_TELEMETRY: Optional[JsonlTelemetrySink] = None


def get_default_cache() -> ResolutionCache:
    """Return the process-wide cache, creating it on first use."""
    global _DEFAULT_CACHE
    if _DEFAULT_CACHE is None:
        _DEFAULT_CACHE = ResolutionCache()
    return _DEFAULT_CACHE


def get_default_loader() -> Loader:
    """Return the process-wide loader (an HttpProbeLoader with defaults)."""
    global _DEFAULT_LOADER
    if _DEFAULT_LOADER is None:
        _DEFAULT_LOADER = build_default_loader()
    return _DEFAULT_LOADER


def get_default_resolver() -> FallbackResolver:
    global _DEFAULT_RESOLVER
    if _DEFAULT_RESOLVER is None:
        _DEFAULT_RESOLVER = FallbackResolver(telemetry=_DEFAULT_TELEMETRY)
    return _DEFAULT_RESOLVER


def configure(config: Optional[FallbackKitConfig] = None) -> FallbackKitConfig:
    """Install logging, telemetry and the default loader from ``config``.

    When ``config`` is omitted it is loaded from the environment
    (``FALLBACKKIT_*``). Existing cache entries are kept.
    """
    global _DEFAULT_LOADER, _DEFAULT_RESOLVER, _DEFAULT_TELEMETRY

    config = config or load_config()
    setup_logging(config.logging)

    if _DEFAULT_TELEMETRY is not None:
        _DEFAULT_TELEMETRY.close()
    _DEFAULT_TELEMETRY = build_telemetry(config.telemetry)
    _DEFAULT_LOADER = build_default_loader(config.probe)
    _DEFAULT_RESOLVER = FallbackResolver(telemetry=_DEFAULT_TELEMETRY)

    LOGGER.debug(f"FallbackKit configured (config {config.config_hash()[:8]})")
    return config


def reset_defaults() -> None:
    """Drop the process-wide cache, loader, resolver and telemetry sink."""
    global _DEFAULT_CACHE, _DEFAULT_LOADER, _DEFAULT_RESOLVER, _DEFAULT_TELEMETRY

    if _DEFAULT_CACHE is not None:
        _DEFAULT_CACHE.clear()
    if _DEFAULT_TELEMETRY is not None:
        _DEFAULT_TELEMETRY.close()
    _DEFAULT_CACHE = None
    _DEFAULT_LOADER = None
    _DEFAULT_RESOLVER = None
    _DEFAULT_TELEMETRY = None


async def shutdown() -> None:
    """Close the default loader's HTTP client, then :func:`reset_defaults`."""
    loader = _DEFAULT_LOADER
    aclose = getattr(loader, "aclose", None)
    if aclose is not None:
        await aclose()
    reset_defaults()


def request_resolution(
    candidates: Iterable[Any],
    *,
    loader: Optional[Loader] = None,
    cache: Optional[ResolutionCache] = None,
    resolver: Optional[FallbackResolver] = None,
    on_change: Optional[StateListener] = None,
) -> ObserverBinding:
    """Start (or join) the resolution of ``candidates``.

    Args:
        candidates: Ordered candidate identifiers; blanks are dropped
        loader: Loader overriding the default probing strategy
        cache: Cache to use instead of the process-wide default
        resolver: Resolver to use instead of the process-wide default
        on_change: Listener called with every new ObserverState

    Returns:
        ObserverBinding already bound to ``candidates``. Its state is
        REJECTED immediately for an empty list, LOADING otherwise.
    """
    binding = ObserverBinding(
        cache if cache is not None else get_default_cache(),
        loader if loader is not None else get_default_loader(),
        resolver if resolver is not None else get_default_resolver(),
    )
    if on_change is not None:
        binding.add_listener(on_change)
    binding.request(candidates)
    return binding


async def resolve(
    candidates: Iterable[Any],
    *,
    loader: Optional[Loader] = None,
    cache: Optional[ResolutionCache] = None,
    resolver: Optional[FallbackResolver] = None,
) -> Candidate:
    """Return the first candidate that loads.

    Raises:
        InvalidInputError: No usable candidate was given
        AllCandidatesFailedError: Every candidate failed (possibly cached)
        ResolutionAbortedError: The shared resolution was cancelled or crashed
    """
    normalized = normalize_candidates(candidates)
    if not normalized:
        raise InvalidInputError()

    cache = cache if cache is not None else get_default_cache()
    loader = loader if loader is not None else get_default_loader()
    resolver = resolver if resolver is not None else get_default_resolver()

    entry = cache.get_or_start(normalized, resolver, loader)
    await entry.wait()
    return entry.result()


__all__ = [
    "configure",
    "get_default_cache",
    "get_default_loader",
    "get_default_resolver",
    "request_resolution",
    "reset_defaults",
    "resolve",
    "shutdown",
]
