"""Pytest configuration and fixtures for ebay-fluent tests.

This file provides:
- MockEbayServer: httpx.MockTransport handler that records requests
- RecordingSleep: stand-in for asyncio.sleep that only records delays
- Fixtures: definition tables, credentials, canned response bodies and a
  factory for transports wired to a mock server
"""

from __future__ import annotations

from typing import Any, Callable, Generator

import httpx
import pytest

from ebay_fluent.definitions import get_definitions
from ebay_fluent.models import DefinitionTables
from ebay_fluent.transport import RateLimiter, Transport, set_default_transport
from ebay_fluent.xml_body import xml_to_tree


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class MockEbayServer:
    """Answers every request with the body returned by *handler*.

    The handler receives the decoded request tree (see ``xml_to_tree``) and
    returns either response XML or an ``httpx.Response``.
    """

    def __init__(self, handler: Callable[[dict[str, Any]], Any]) -> None:
        self._handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._handler(xml_to_tree(request.content))
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, text=reply, headers={"content-type": "text/xml"})

    @property
    def trees(self) -> list[dict[str, Any]]:
        return [xml_to_tree(request.content) for request in self.requests]


def response_xml(verb: str, inner: str = "", ack: str = "Success") -> str:
    """Wrap *inner* in a ``<Verb>Response`` envelope with the usual noise keys."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<{verb}Response xmlns="urn:ebay:apis:eBLBaseComponents">'
        "<Timestamp>2024-05-01T12:00:00.000Z</Timestamp>"
        f"<Ack>{ack}</Ack>"
        "<Version>1193</Version>"
        "<Build>E1193_CORE_API_19146596_R1</Build>"
        f"{inner}"
        f"</{verb}Response>"
    )


@pytest.fixture(autouse=True)
def isolated_default_transport() -> Generator[None, None, None]:
    """Give every test a fresh process-wide transport."""
    set_default_transport(None)
    yield
    set_default_transport(None)


@pytest.fixture
def tables() -> DefinitionTables:
    return get_definitions()


@pytest.fixture
def credentials() -> dict[str, Any]:
    return {
        "authToken": "AgAAAA**test-token",
        "cert": "cert-id",
        "app": "app-id",
        "devName": "dev-id",
    }


@pytest.fixture
def make_response() -> Callable[..., str]:
    return response_xml


@pytest.fixture
def mock_transport() -> Callable[..., tuple[Transport, MockEbayServer]]:
    """Factory: ``transport, server = mock_transport(handler)``."""

    def factory(
        handler: Callable[[dict[str, Any]], Any],
        max_requests: int = 1000,
        period: float = 1.0,
    ) -> tuple[Transport, MockEbayServer]:
        server = MockEbayServer(handler)
        limiter = RateLimiter(max_requests=max_requests, period=period, sleep=RecordingSleep())
        return Transport(limiter, http_transport=httpx.MockTransport(server)), server

    return factory
