# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures: scripted hosts behind an HTTPX MockTransport",
#   "sections": [
#     {"id": "hostscript", "name": "HostScript", "anchor": "class-hostscript", "kind": "class"},
#     {"id": "fakeclock", "name": "FakeClock", "anchor": "class-fakeclock", "kind": "class"},
#     {"id": "make-client", "name": "make_client", "anchor": "fixture-make-client", "kind": "fixture"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Hermetic fixtures for dispatch tests. No test touches the network: every
request goes through an ``httpx.MockTransport`` whose handler looks up the
behaviour scripted for the request's host.

Usage:
    def test_failover(host_script, make_client):
        host_script.fail("a.test")
        host_script.json("b.test", {"ok": True})
        client = make_client(hosts=["a.test", "b.test"])
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Type

import httpx
import pytest

from HostedSearch import InlineExecutor, SearchClient

Behaviour = Callable[[httpx.Request], httpx.Response]


class HostScript:
    """Per-host scripted responses plus a log of every request received."""

    def __init__(self) -> None:
        self.behaviours: Dict[str, Behaviour] = {}
        self.requests: List[httpx.Request] = []

    def json(self, host: str, payload: Any, status: int = 200) -> "HostScript":
        content = json.dumps(payload).encode("utf-8")
        self.behaviours[host] = lambda _request: httpx.Response(status, content=content)
        return self

    def status(self, host: str, status: int, content: bytes = b"") -> "HostScript":
        self.behaviours[host] = lambda _request: httpx.Response(status, content=content)
        return self

    def fail(
        self,
        host: str,
        exc_type: Type[httpx.RequestError] = httpx.ConnectError,
        message: str = "connection refused",
    ) -> "HostScript":
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc_type(message, request=request)

        self.behaviours[host] = _raise
        return self

    def handler(self, host: str, fn: Callable[[httpx.Request], httpx.Response]) -> "HostScript":
        self.behaviours[host] = fn
        return self

    def hosts_hit(self) -> List[str]:
        return [request.url.host for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        behaviour = self.behaviours.get(request.url.host)
        if behaviour is None:
            return httpx.Response(404, json={"message": f"no script for {request.url.host}"})
        return behaviour(request)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def host_script() -> HostScript:
    return HostScript()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_http_client(host_script: HostScript):
    client = httpx.Client(transport=httpx.MockTransport(host_script))
    yield client
    client.close()


@pytest.fixture
def make_client(mock_http_client: httpx.Client):
    """Factory for clients wired to the mock transport with inline executors."""
    created: List[SearchClient] = []

    def _make(**kwargs: Any) -> SearchClient:
        kwargs.setdefault("http_client", mock_http_client)
        kwargs.setdefault("request_executor", InlineExecutor())
        kwargs.setdefault("completion_executor", InlineExecutor())
        application_id = kwargs.pop("application_id", "APPID")
        api_key = kwargs.pop("api_key", "secret-key")
        client = SearchClient(application_id, api_key, **kwargs)
        created.append(client)
        return client

    yield _make
    for client in created:
        client.close()
