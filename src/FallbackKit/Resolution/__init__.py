# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.__init__",
#   "purpose": "Fallback resolution with shared, memoized outcomes.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Fallback Resolution

Resolves an ordered list of candidate identifiers (e.g. alternative
locations of the same image) to the first one that loads:
- Strictly sequential probing with early exit on first success
- One shared resolution per distinct candidate list (memoized)
- Per-consumer observer state that ignores results for abandoned requests
- Pluggable loader (HTTP probe by default)

Public API:
  request_resolution - Bind a consumer to a candidate list
  resolve - Await the winning candidate
  shutdown - Close the default HTTP client and reset defaults
  FallbackResolver - Sequential resolver
  ResolutionCache - Memoization layer
  ObserverBinding - Per-consumer state
  Loader / HttpProbeLoader / FunctionLoader - Probing strategies
"""

from .api import (
    configure,
    get_default_cache,
    get_default_loader,
    get_default_resolver,
    request_resolution,
    reset_defaults,
    resolve,
    shutdown,
)
from .cache import CacheEntry, CacheStats, ResolutionCache
from .errors import (
    AllCandidatesFailedError,
    ConfigurationError,
    InvalidInputError,
    PerCandidateLoadError,
    ResolutionAbortedError,
    ResolutionError,
)
from .loader import FunctionLoader, HttpProbeLoader, Loader, build_default_loader
from .observer import ObserverBinding
from .resolver import FallbackResolver, ResolutionRun, ResolverState
from .types import (
    BindingState,
    DeliveryResult,
    Failure,
    ObserverState,
    ProbeResult,
    ResolutionOutcome,
    Success,
    cache_key,
    normalize_candidates,
)

__all__ = [
    # entry points
    "configure",
    "get_default_cache",
    "get_default_loader",
    "get_default_resolver",
    "request_resolution",
    "reset_defaults",
    "resolve",
    "shutdown",
    # components
    "CacheEntry",
    "CacheStats",
    "FallbackResolver",
    "FunctionLoader",
    "HttpProbeLoader",
    "Loader",
    "ObserverBinding",
    "ResolutionCache",
    "ResolutionRun",
    "ResolverState",
    "build_default_loader",
    # types
    "BindingState",
    "DeliveryResult",
    "Failure",
    "ObserverState",
    "ProbeResult",
    "ResolutionOutcome",
    "Success",
    "cache_key",
    "normalize_candidates",
    # errors
    "AllCandidatesFailedError",
    "ConfigurationError",
    "InvalidInputError",
    "PerCandidateLoadError",
    "ResolutionAbortedError",
    "ResolutionError",
]
