from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import omniplexer` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from omniplexer.core.registry import ServerRegistry  # noqa: E402
from omniplexer.core.upstreams import build_router  # noqa: E402
from omniplexer.main import app  # noqa: E402
from omniplexer.services.fetcher import ParallelFetcher  # noqa: E402
from omniplexer.services.stats import StatsEngine  # noqa: E402

Handler = Callable[[httpx.Request], httpx.Response]
Sections = Mapping[str, Mapping[str, str]]


def metrics_body(*lines: str) -> str:
    return "\n".join(lines) + "\n"


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler`` in-process."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


def make_fetcher(
    handler: Handler, *, timeout: float = 5.0, names: tuple[str, ...] = ()
) -> tuple[ParallelFetcher, StatsEngine, httpx.AsyncClient]:
    stats = StatsEngine(names)
    client = mock_client(handler)
    return ParallelFetcher(client, stats, timeout=timeout), stats, client


@pytest.fixture
def make_client() -> Iterator[Callable[..., TestClient]]:
    """Build a TestClient whose upstreams are served by a mock handler.

    Bypasses the lifespan (no config file needed): the router is installed
    on app.state directly.
    """
    clients: list[httpx.AsyncClient] = []

    def _make(sections: Sections, handler: Handler, *, timeout: float = 5.0) -> TestClient:
        registry = ServerRegistry.load(sections)
        client = mock_client(handler)
        clients.append(client)
        app.state.router = build_router(registry, client, timeout=timeout)
        return TestClient(app)

    yield _make

    for client in clients:
        asyncio.run(client.aclose())
    if hasattr(app.state, "router"):
        del app.state.router


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    """One unprefixed upstream that always answers with a single gauge."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=metrics_body("up 1"))

    return make_client({"srv": {"url": "http://srv.test"}}, handler)
