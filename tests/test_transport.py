"""Tests for the rate limiter and the HTTP transport.

Tests cover:
- RateLimiter: window admission, FIFO ordering, sleep only when needed,
  argument validation
- Transport.send: request shape, status errors, network errors
- Process-wide transport: singleton, configure_rate_limit, reset
- Client lifecycle: pooled client reuse, aclose, async with, new event loops
"""

import asyncio
from typing import Any

import httpx
import pytest

from ebay_fluent.transport import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_PERIOD,
    RateLimiter,
    Transport,
    configure_rate_limit,
    default_transport,
    set_default_transport,
)

from tests.conftest import RecordingSleep


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# =============================================================================
# RateLimiter
# =============================================================================


class TestRateLimiter:
    def test_defaults(self) -> None:
        limiter = RateLimiter()
        assert limiter.max_requests == DEFAULT_MAX_REQUESTS == 5000
        assert limiter.period == DEFAULT_PERIOD == 86400

    def test_window_delays(self) -> None:
        limiter = RateLimiter(max_requests=2, period=10.0, clock=FakeClock())
        assert [limiter.reserve() for _ in range(5)] == [0, 0, 10, 10, 20]

    def test_delays_never_decrease(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_requests=3, period=5.0, clock=clock)
        starts = []
        for i in range(10):
            clock.now = i * 0.5
            starts.append(clock.now + limiter.reserve())
        assert starts == sorted(starts)

    def test_window_slides_with_clock(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_requests=2, period=10.0, clock=clock)
        limiter.reserve()
        limiter.reserve()
        clock.now = 10.0
        assert limiter.reserve() == 0

    def test_no_more_than_max_in_any_window(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(max_requests=3, period=10.0, clock=clock)
        starts = [limiter.reserve() for _ in range(9)]
        for start in starts:
            in_window = [s for s in starts if start <= s < start + 10.0]
            assert len(in_window) <= 3

    @pytest.mark.parametrize("kwargs", [{"max_requests": 0}, {"max_requests": -1}, {"period": 0}])
    def test_rejects_non_positive(self, kwargs: dict[str, Any]) -> None:
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)

    @pytest.mark.asyncio
    async def test_acquire_sleeps_only_when_needed(self) -> None:
        sleep = RecordingSleep()
        limiter = RateLimiter(max_requests=1, period=30.0, clock=FakeClock(), sleep=sleep)
        await limiter.acquire()
        assert sleep.calls == []
        await limiter.acquire()
        await limiter.acquire()
        assert sleep.calls == [30.0, 60.0]


# =============================================================================
# Transport.send
# =============================================================================


class TestSend:
    @pytest.mark.asyncio
    async def test_posts_document(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="<ok/>")

        transport = Transport(
            RateLimiter(sleep=RecordingSleep()), http_transport=httpx.MockTransport(handler)
        )
        body = await transport.send(
            "https://api.ebay.com/ws/api.dll",
            {"X-EBAY-API-CALL-NAME": "GetItem"},
            "<GetItemRequest>é</GetItemRequest>",
        )

        assert body == "<ok/>"
        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "https://api.ebay.com/ws/api.dll"
        assert seen[0].headers["Content-Type"] == "text/xml"
        assert seen[0].headers["X-EBAY-API-CALL-NAME"] == "GetItem"
        assert seen[0].content == "<GetItemRequest>é</GetItemRequest>".encode("utf-8")

    @pytest.mark.asyncio
    async def test_status_error(self) -> None:
        transport = Transport(
            http_transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        )
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        assert exc_info.value.response.status_code == 500

    @pytest.mark.asyncio
    async def test_network_error_unwrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = Transport(http_transport=httpx.MockTransport(handler))
        with pytest.raises(httpx.ConnectError):
            await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")

    @pytest.mark.asyncio
    async def test_each_send_acquires(self) -> None:
        sleep = RecordingSleep()
        limiter = RateLimiter(max_requests=1, period=5.0, clock=FakeClock(), sleep=sleep)
        transport = Transport(
            limiter,
            http_transport=httpx.MockTransport(lambda request: httpx.Response(200, text="")),
        )
        for _ in range(3):
            await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        assert sleep.calls == [5.0, 10.0]


# =============================================================================
# Process-wide transport
# =============================================================================


class TestDefaultTransport:
    def test_singleton(self) -> None:
        assert default_transport() is default_transport()

    def test_default_limits(self) -> None:
        assert default_transport().limiter.max_requests == 5000

    def test_configure_rate_limit(self) -> None:
        limiter = configure_rate_limit(100, period=60.0)
        assert default_transport().limiter is limiter
        assert limiter.max_requests == 100
        assert limiter.period == 60.0

    def test_set_and_reset(self) -> None:
        custom = Transport()
        set_default_transport(custom)
        assert default_transport() is custom
        set_default_transport(None)
        assert default_transport() is not custom

    def test_configure_rate_limit_only_once(self) -> None:
        installed = configure_rate_limit(1, period=86400.0)
        assert installed.reserve() == 0
        again = configure_rate_limit(1, period=86400.0)
        assert again is installed
        assert default_transport().limiter.reserve() > 0


# =============================================================================
# Client lifecycle
# =============================================================================


def _ok_transport() -> Transport:
    return Transport(
        RateLimiter(sleep=RecordingSleep()),
        http_transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<ok/>")),
    )


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_sends_reuse_one_client(self) -> None:
        transport = _ok_transport()
        await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        first = transport._client
        await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        assert first is not None
        assert transport._client is first
        assert not first.is_closed
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self) -> None:
        transport = _ok_transport()
        await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        client = transport._client
        await transport.aclose()
        assert client.is_closed
        assert transport._client is None

    @pytest.mark.asyncio
    async def test_send_after_aclose_opens_new_client(self) -> None:
        transport = _ok_transport()
        await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
        old = transport._client
        await transport.aclose()
        assert await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>") == "<ok/>"
        assert transport._client is not old
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_aclose_without_client(self) -> None:
        await _ok_transport().aclose()

    @pytest.mark.asyncio
    async def test_async_context_manager(self) -> None:
        async with _ok_transport() as transport:
            await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
            client = transport._client
        assert client.is_closed

    def test_new_event_loop_gets_new_client(self) -> None:
        transport = _ok_transport()

        async def send_and_get_client() -> httpx.AsyncClient:
            await transport.send("https://api.ebay.com/ws/api.dll", {}, "<x/>")
            return transport._client

        first = asyncio.run(send_and_get_client())
        second = asyncio.run(send_and_get_client())
        assert first is not second
