"""Transport - Rate-limited HTTP sender shared by every client in the process.

The remote API enforces one call quota per application (5000 calls per day
by default), so every ``Ebay`` client and every ``Request`` sends through the
same ``Transport`` unless one is injected explicitly. The limiter queues
callers instead of rejecting them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from threading import Lock
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


DEFAULT_MAX_REQUESTS = 5000
DEFAULT_PERIOD = 60.0 * 60.0 * 24.0
DEFAULT_TIMEOUT = 30.0


class RateLimiter:
    """Admits at most ``max_requests`` calls in any ``period`` second window.

    Usage:
        limiter = RateLimiter(max_requests=5000, period=86400.0)
        await limiter.acquire()   # waits until a slot is free

    Slots are reserved under a lock in arrival order, so waiting callers are
    admitted first in, first out. The lock is a thread lock held only for the
    reservation itself; the wait happens outside it, which lets one limiter
    serve callers on any event loop or thread.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        period: float = DEFAULT_PERIOD,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Calls admitted per window. Must be positive.
            period: Window length in seconds. Must be positive.
            clock: Monotonic clock, injectable for tests.
            sleep: Coroutine used to wait, injectable for tests.
        """
        if max_requests <= 0:
            raise ValueError(f"max_requests must be positive, got {max_requests}")
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")

        self.max_requests = max_requests
        self.period = period
        self._clock = clock
        self._sleep = sleep
        # Admission times of the most recent max_requests calls (may lie in the future).
        self._admitted: deque[float] = deque(maxlen=max_requests)
        self._lock = Lock()

    def reserve(self) -> float:
        """Reserve the next free slot and return how long to wait for it."""
        with self._lock:
            now = self._clock()
            start = now
            if self._admitted:
                start = max(start, self._admitted[-1])
            if len(self._admitted) == self.max_requests:
                start = max(start, self._admitted[0] + self.period)
            self._admitted.append(start)
            return start - now

    async def acquire(self) -> None:
        """Wait until this caller may send."""
        delay = self.reserve()
        if delay > 0:
            logger.debug("Rate limit reached, waiting %.3fs", delay)
            await self._sleep(delay)


class Transport:
    """Sends request documents through a shared rate limiter.

    Usage:
        async with Transport(RateLimiter()) as transport:
            body = await transport.send(url, headers, xml)

    One ``httpx.AsyncClient`` is opened on first send and reused, so pages of
    a listing call share pooled connections. A client is bound to the event
    loop that opened it; a send from another loop (e.g. a later ``run_sync``)
    opens a fresh one.

    Network and HTTP status errors propagate as httpx exceptions. Nothing is
    retried here.
    """

    def __init__(
        self,
        limiter: RateLimiter | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            limiter: Rate limiter to admit calls through; a default
                     5000/day limiter if None. An explicit limiter counts as
                     configured and is never replaced by configure_rate_limit.
            timeout: Timeout in seconds for each HTTP call.
            http_transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
                            handed to the client this transport opens.
        """
        self.limiter = limiter or RateLimiter()
        self._limit_configured = limiter is not None
        self._timeout = timeout
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None
        self._lock = Lock()

    def configure_rate_limit(
        self, max_requests: int, period: float = DEFAULT_PERIOD
    ) -> RateLimiter:
        """Install a limiter, once.

        The first call replaces the default limiter. Later calls keep the
        installed limiter and its admission history, so the quota cannot be
        reset by configuring it again. Returns the limiter in effect.
        """
        with self._lock:
            if self._limit_configured:
                current = self.limiter
                if (current.max_requests, current.period) != (max_requests, period):
                    logger.warning(
                        "Rate limit already set to %d requests per %.0fs; ignoring %d per %.0fs",
                        current.max_requests, current.period, max_requests, period,
                    )
                return current
            self.limiter = RateLimiter(max_requests=max_requests, period=period)
            self._limit_configured = True
        logger.debug("Rate limit set to %d requests per %.0fs", max_requests, period)
        return self.limiter

    def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        with self._lock:
            client = self._client
            if client is None or client.is_closed or self._client_loop is not loop:
                client = httpx.AsyncClient(timeout=self._timeout, transport=self._http_transport)
                self._client = client
                self._client_loop = loop
            return client

    async def send(self, endpoint: str, headers: dict[str, str], body: str) -> str:
        """POST *body* to *endpoint* and return the response text.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response.
            httpx.RequestError: On connection errors and timeouts.
        """
        await self.limiter.acquire()

        request_headers = {"Content-Type": "text/xml", **headers}
        logger.debug(
            "POST %s (%s)", endpoint, request_headers.get("X-EBAY-API-CALL-NAME", "?")
        )

        client = self._get_client()
        start_time = time.perf_counter()
        response = await client.post(
            endpoint, headers=request_headers, content=body.encode("utf-8")
        )
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        logger.debug("%s responded %d in %.1fms", endpoint, response.status_code, elapsed_ms)
        response.raise_for_status()
        return response.text

    async def aclose(self) -> None:
        """Close the pooled client. A later send opens a new one."""
        with self._lock:
            client, self._client, self._client_loop = self._client, None, None
        if client is not None:
            await client.aclose()

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


_default_transport: Transport | None = None
_default_lock = Lock()


def default_transport() -> Transport:
    """The process-wide transport, created on first use."""
    global _default_transport
    with _default_lock:
        if _default_transport is None:
            _default_transport = Transport()
        return _default_transport


def set_default_transport(transport: Transport | None) -> None:
    """Replace the process-wide transport (None resets to a fresh default)."""
    global _default_transport
    with _default_lock:
        _default_transport = transport


def configure_rate_limit(max_requests: int, period: float = DEFAULT_PERIOD) -> RateLimiter:
    """Set the rate limit of the process-wide transport.

    Meant to run once at start-up, e.g. for applications approved for a
    higher call limit. Only the first configuration takes effect. Returns
    the limiter in effect.
    """
    return default_transport().configure_rate_limit(max_requests, period)
