"""Concurrent upstream fetching with per-target timing and classification.

fetch_all() starts one GET per target on a shared httpx.AsyncClient and
waits for every one of them.  Each target has its own wall-clock deadline
(5s by default); a slow target is abandoned on its own without cutting
its siblings short, and there is no shared deadline for the batch.

Every attempt, success or not, is recorded in the StatsEngine.  Failures
are logged with the upstream name and counted, but never raised: the
caller decides what a missing body means for its response.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence

import httpx

from omniplexer.core.metrics import UPSTREAM_FETCH_DURATION
from omniplexer.models.fetch import (
    FetchResult,
    HTTPFailure,
    Outcome,
    Success,
    TransportFailure,
)
from omniplexer.models.server import ServerConfig
from omniplexer.services.stats import StatsEngine

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def _describe(exc: BaseException) -> str:
    # httpx timeouts often carry an empty message
    return str(exc) or type(exc).__name__


class ParallelFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        stats: StatsEngine,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._stats = stats
        self._timeout = timeout

    async def fetch_all(self, targets: Sequence[ServerConfig], path: str) -> list[FetchResult]:
        """Fetch ``path`` from every target concurrently.

        Results come back in target order, not completion order.
        """
        if not targets:
            return []
        return list(await asyncio.gather(*(self._fetch(target, path) for target in targets)))

    async def fetch_one(self, target: ServerConfig, path: str) -> str | None:
        """Single-target variant: the body on success, None on any failure."""
        result = await self._fetch(target, path)
        return result.body

    async def _fetch(self, target: ServerConfig, path: str) -> FetchResult:
        headers = {"Authorization": target.auth_header} if target.auth_header else {}

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.get(target.url_for(path), headers=headers, timeout=self._timeout),
                timeout=self._timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as exc:
            outcome: Outcome = TransportFailure(cause=_describe(exc))
        else:
            if response.status_code >= 400:
                outcome = HTTPFailure(status=response.status_code)
            else:
                outcome = Success(body=response.text, status=response.status_code)
        elapsed_ms = (time.monotonic() - start) * 1000

        self._record(target.name, elapsed_ms, outcome)
        return FetchResult(server_name=target.name, elapsed_ms=elapsed_ms, outcome=outcome)

    def _record(self, name: str, elapsed_ms: float, outcome: Outcome) -> None:
        self._stats.record_sample(name, elapsed_ms)

        if isinstance(outcome, TransportFailure):
            label = "transport_error"
            logger.error(
                "Upstream transport error",
                extra={"server": name, "error": outcome.cause},
            )
            self._stats.record_error(name)
        elif isinstance(outcome, HTTPFailure):
            label = "http_error"
            logger.error(
                "Upstream HTTP error",
                extra={"server": name, "status": outcome.status},
            )
            self._stats.record_error(name)
        else:
            label = "success"

        UPSTREAM_FETCH_DURATION.labels(server=name, outcome=label).observe(elapsed_ms / 1000)
