# === NAVMAP v1 ===
# {
#   "module": "FallbackKit.Resolution.loader",
#   "purpose": "Pluggable candidate loaders.",
#   "sections": [
#     {
#       "id": "loader",
#       "name": "Loader",
#       "anchor": "class-loader",
#       "kind": "class"
#     },
#     {
#       "id": "httpprobeloader",
#       "name": "HttpProbeLoader",
#       "anchor": "class-httpprobeloader",
#       "kind": "class"
#     },
#     {
#       "id": "functionloader",
#       "name": "FunctionLoader",
#       "anchor": "class-functionloader",
#       "kind": "class"
#     },
#     {
#       "id": "build-default-loader",
#       "name": "build_default_loader",
#       "anchor": "function-build-default-loader",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Pluggable candidate loaders.

A loader answers one question for one candidate: does it load? Each loader
is an object with signature ``async probe(candidate) -> ProbeResult``.

Implementations:
- HttpProbeLoader: default, validates the candidate URL over HTTP(S)
- FunctionLoader: adapts an async callable returning ``bool`` or ``ProbeResult``

Loaders report failures as ``ProbeResult(ok=False)`` rather than raising,
so the resolver's control flow stays uniform.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence, Union, runtime_checkable

import httpx

from .config.models import ProbeConfig
from .types import Candidate, ProbeResult

LOGGER = logging.getLogger(__name__)

_METHOD_NOT_ALLOWED = (405, 501)


@runtime_checkable
class Loader(Protocol):
    """Protocol describing the minimal loader interface."""

    async def probe(self, candidate: Candidate) -> ProbeResult: ...


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))


def content_type_accepted(content_type: Optional[str], accepted: Sequence[str]) -> bool:
    """Return True when ``content_type`` starts with one of the accepted prefixes.

    An empty ``accepted`` sequence accepts any content type, including a
    missing one.
    """
    if not accepted:
        return True
    if not content_type:
        return False
    ct = content_type.split(";", 1)[0].strip().lower()
    return any(ct.startswith(prefix) for prefix in accepted)


class HttpProbeLoader:
    """Validate candidate URLs with an HTTP request.

    A candidate succeeds when the final response status is 2xx and its
    ``Content-Type`` matches one of ``config.accept_content_types``. When a
    HEAD request is answered with 405/501 the probe is re-issued once as a
    GET whose body is never read.

    Attributes:
        config: ProbeConfig controlling method, timeouts and headers
        client: Optional caller-owned ``httpx.AsyncClient``. When absent the
            loader opens one client on first use and reuses it for every
            probe on that event loop; :meth:`aclose` releases it.
        transport: Optional transport for the loader-owned client
    """

    def __init__(
        self,
        config: Optional[ProbeConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or ProbeConfig()
        self.client = client
        self.transport = transport
        self._owned_client: Optional[httpx.AsyncClient] = None
        self._owned_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_config(cls, config: ProbeConfig) -> "HttpProbeLoader":
        return cls(config=config)

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.config.user_agent}
        headers.update(self.config.headers)
        return headers

    @property
    def owned_client(self) -> Optional[httpx.AsyncClient]:
        """The client this loader opened itself, if any."""
        return self._owned_client

    def _get_client(self) -> httpx.AsyncClient:
        if self.client is not None:
            return self.client

        loop = asyncio.get_running_loop()
        client = self._owned_client
        if client is None or client.is_closed or self._owned_loop is not loop:
            # Connections are bound to the loop that opened them.
            client = httpx.AsyncClient(verify=self.config.verify_tls, transport=self.transport)
            self._owned_client = client
            self._owned_loop = loop
            LOGGER.debug("Opened HTTP client for probing")
        return client

    async def aclose(self) -> None:
        """Close the loader-owned client. A caller-owned client is left open."""
        client, self._owned_client = self._owned_client, None
        self._owned_loop = None
        if client is not None and not client.is_closed:
            await client.aclose()
            LOGGER.debug("Closed HTTP client for probing")

    async def probe(self, candidate: Candidate) -> ProbeResult:
        start = time.monotonic()
        try:
            return await self._probe_with(self._get_client(), candidate, start)
        except httpx.TimeoutException as e:
            LOGGER.debug(f"Probe timed out for {candidate}: {e}")
            return ProbeResult.failed(candidate, "timeout", elapsed_ms=_elapsed_ms(start), error=e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            LOGGER.debug(f"Probe failed for {candidate}: {e}")
            return ProbeResult.failed(
                candidate, "request_error", elapsed_ms=_elapsed_ms(start), error=e
            )

    async def _probe_with(
        self, client: httpx.AsyncClient, candidate: Candidate, start: float
    ) -> ProbeResult:
        method = self.config.method
        status, content_type = await self._request(client, method, candidate)
        if (
            method == "HEAD"
            and status in _METHOD_NOT_ALLOWED
            and self.config.get_on_method_not_allowed
        ):
            LOGGER.debug(f"HEAD not allowed for {candidate} (HTTP {status}), probing with GET")
            method = "GET"
            status, content_type = await self._request(client, method, candidate)

        meta = {"method": method}
        if not 200 <= status < 300:
            return ProbeResult.failed(
                candidate,
                f"http_{status}",
                status=status,
                content_type=content_type,
                elapsed_ms=_elapsed_ms(start),
                meta=meta,
            )
        if not content_type_accepted(content_type, self.config.accept_content_types):
            return ProbeResult.failed(
                candidate,
                "wrong_content_type",
                status=status,
                content_type=content_type,
                elapsed_ms=_elapsed_ms(start),
                meta=meta,
            )
        return ProbeResult.succeeded(
            candidate,
            status=status,
            content_type=content_type,
            elapsed_ms=_elapsed_ms(start),
            meta=meta,
        )

    async def _request(
        self, client: httpx.AsyncClient, method: str, url: str
    ) -> tuple[int, Optional[str]]:
        request = client.build_request(
            method,
            url,
            headers=self._headers(),
            timeout=self.config.timeout_s,
        )
        response = await client.send(
            request,
            stream=True,
            follow_redirects=self.config.follow_redirects,
        )
        try:
            return response.status_code, response.headers.get("Content-Type")
        finally:
            await response.aclose()


ProbeFunc = Callable[[Candidate], Awaitable[Union[bool, ProbeResult]]]


class FunctionLoader:
    """Adapt an async callable into a Loader.

    The callable may return ``True``/``False`` or a full ``ProbeResult``.
    An exception raised by the callable is reported as a failed probe with
    reason ``loader_exception``.

    Example:
        ```python
        async def exists(url: str) -> bool:
            return url in KNOWN_GOOD

        loader = FunctionLoader(exists)
        ```
    """

    def __init__(self, func: ProbeFunc, *, failure_reason: str = "load_failed") -> None:
        self.func = func
        self.failure_reason = failure_reason

    async def probe(self, candidate: Candidate) -> ProbeResult:
        start = time.monotonic()
        try:
            result: Any = await self.func(candidate)
        except Exception as e:  # pylint: disable=broad-except
            LOGGER.debug(f"Probe callable raised for {candidate}: {e}")
            return ProbeResult.failed(
                candidate, "loader_exception", elapsed_ms=_elapsed_ms(start), error=e
            )
        if isinstance(result, ProbeResult):
            return result
        if result:
            return ProbeResult.succeeded(candidate, elapsed_ms=_elapsed_ms(start))
        return ProbeResult.failed(candidate, self.failure_reason, elapsed_ms=_elapsed_ms(start))


def build_default_loader(config: Optional[ProbeConfig] = None) -> HttpProbeLoader:
    """Build the default HTTP loader from ``config`` (defaults when omitted)."""
    return HttpProbeLoader.from_config(config or ProbeConfig())


__all__ = [
    "FunctionLoader",
    "HttpProbeLoader",
    "Loader",
    "ProbeFunc",
    "build_default_loader",
    "content_type_accepted",
]
