"""Shared fixtures for the toolgate test suite."""

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from toolgate.config.settings import Settings
from toolgate.kernel.executor.tool_contract import AuthDescriptor, ToolRouteRecord
from toolgate.kernel.store.inmemory import InMemoryToolConfigStore
from toolgate.kernel.store.interface import ToolConfigStore

TICKET_SCHEMA = json.dumps(
    {
        "type": "object",
        "properties": {
            "title": {"type": "string", "minLength": 1},
            "priority": {"type": "integer", "default": 3},
        },
        "required": ["title"],
    }
)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(ToolConfigStore):
    """Wraps a store and counts lookups."""

    def __init__(self, inner: ToolConfigStore) -> None:
        self.inner = inner
        self.route_lookups = 0
        self.auth_lookups = 0
        self.kind_lookups = 0

    async def get_route(self, route_name: str) -> ToolRouteRecord | None:
        self.route_lookups += 1
        return await self.inner.get_route(route_name)

    async def get_auth_descriptor(self, auth_id: int) -> AuthDescriptor | None:
        self.auth_lookups += 1
        return await self.inner.get_auth_descriptor(auth_id)

    async def get_tool_kind(self, tool_name: str) -> str | None:
        self.kind_lookups += 1
        return await self.inner.get_tool_kind(tool_name)


class UpstreamRecorder:
    """MockTransport handler that records requests and answers from a callable.

    The default responder returns {"ok": true}; login requests to
    https://auth.example.com/login return a token.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = self._default

    def _default(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.com":
            return httpx.Response(200, json={"access_token": "tok-123"})
        return httpx.Response(200, json={"ok": True})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def to_host(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def json_body(self, request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def memory_store() -> InMemoryToolConfigStore:
    """Store with one route per auth flavour."""
    store = InMemoryToolConfigStore()

    store.add_auth_descriptor(
        1,
        "bearer",
        {
            "token_url": "https://auth.example.com/login",
            "method": "POST",
            "body": {"username": "bot", "password": "s3cret"},
            "token_path": "access_token",
        },
    )
    store.add_auth_descriptor(2, "api-key", {"key_name": "appid", "key_value": "k-query", "in": "query"})
    store.add_auth_descriptor(3, "api-key", {"key_name": "X-Api-Key", "key_value": "k-header", "in": "header"})

    store.add_tool(10, "weather", "https://api.example.com")
    store.add_tool(11, "helpdesk", "https://helpdesk.example.com/api/", auth_id=1)
    store.add_tool(12, "maps", "https://maps.example.com", auth_id=2, kind="geo")
    store.add_tool(13, "crm", "https://crm.example.com", auth_id=3)
    store.add_tool(14, "legacy", "https://legacy.example.com", active=False)

    store.add_route("get-weather", 10, path="/v1/weather/{city}", method="GET")
    store.add_route(
        "create-ticket",
        11,
        path="/tickets",
        method="POST",
        request_body_schema_json=TICKET_SCHEMA,
    )
    store.add_route(
        "get-ticket",
        11,
        path="/tickets/{ticket_id}",
        method="GET",
        request_body_schema_json=TICKET_SCHEMA,
    )
    store.add_route("geocode", 12, path="/geocode", method="GET")
    store.add_route("update-contact", 13, path="/contacts/{contact_id}", method="PUT")
    store.add_route("retired-route", 10, path="/v0/weather", method="GET", active=False)
    store.add_route("legacy-lookup", 14, path="/lookup", method="GET")
    return store


@pytest.fixture
def counting_store(memory_store: InMemoryToolConfigStore) -> CountingStore:
    return CountingStore(memory_store)


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest_asyncio.fixture
async def http_client(upstream: UpstreamRecorder) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client
