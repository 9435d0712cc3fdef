"""Startup/shutdown of the upstream side: registry, HTTP client, router.

Everything here is built once per process and shared by every request:
the StatsEngine in particular must be a single instance, since it holds
the process-lifetime counters.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from omniplexer.core.config import Settings
from omniplexer.core.metrics import REGISTRY as COLLECTOR_REGISTRY
from omniplexer.core.registry import ServerRegistry, load_config_file
from omniplexer.services.fetcher import DEFAULT_TIMEOUT_SECONDS, ParallelFetcher
from omniplexer.services.router import Router
from omniplexer.services.self_metrics import SelfMetricsReporter
from omniplexer.services.stats import StatsEngine

logger = logging.getLogger(__name__)


def build_router(
    registry: ServerRegistry,
    client: httpx.AsyncClient,
    *,
    stats: StatsEngine | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Router:
    stats = stats if stats is not None else StatsEngine(registry.names())
    fetcher = ParallelFetcher(client, stats, timeout=timeout)
    reporter = SelfMetricsReporter(registry, stats, collectors=COLLECTOR_REGISTRY)
    return Router(registry, stats, fetcher, reporter)


@asynccontextmanager
async def lifespan_upstreams(app: FastAPI, settings: Settings) -> AsyncIterator[None]:
    """Load the upstream registry and open the shared HTTP client.

    A ConfigError propagates out of startup: the process must not serve
    with a broken upstream configuration.
    """
    registry = load_config_file(settings.config_path)

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=settings.upstream_timeout,
    ) as client:
        app.state.router = build_router(registry, client, timeout=settings.upstream_timeout)
        logger.info(
            "Multiplexing %d upstream(s): %s",
            len(registry),
            ", ".join(registry.names()) or "(none)",
        )
        yield
    logger.info("Upstream HTTP client closed")
