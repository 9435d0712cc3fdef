"""Route an inbound request target to one of five modes.

Classification, first hit wins:

  1. /health                    -> health     (static JSON, no upstream calls)
  2. /metrics or /self-metrics  -> self_metrics
  3. exactly one server whose prefix starts the path
                                -> proxy      (prefix stripped, body verbatim)
  4. several such servers       -> fanout     (prefix stripped, one block each)
  5. no prefix matches          -> aggregate  (every server, path unchanged,
                                               prefixed servers rewritten)

In fanout all matched servers are assumed to share one literal prefix;
the first match's prefix is stripped for all of them.

Failures in fanout/aggregate only shrink the body: the response is still
200, even when every upstream failed.  Only proxy mode answers 502.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from omniplexer.core.registry import ServerRegistry
from omniplexer.models.fetch import FetchResult
from omniplexer.models.server import ServerConfig
from omniplexer.services.fetcher import ParallelFetcher
from omniplexer.services.rewriter import rewrite_metrics
from omniplexer.services.self_metrics import EXPOSITION_CONTENT_TYPE, SelfMetricsReporter
from omniplexer.services.stats import StatsEngine

logger = logging.getLogger(__name__)

RouteMode = Literal["health", "self_metrics", "proxy", "fanout", "aggregate"]

HEALTH_PATH = "/health"
SELF_METRICS_PATHS = ("/metrics", "/self-metrics")
PROXY_ERROR_BODY = "# Error fetching metrics from server"
BLOCK_SEPARATOR = "\n\n"


@dataclass(frozen=True, slots=True)
class RouteResult:
    mode: RouteMode
    status_code: int
    body: str
    media_type: str


def _block(result: FetchResult, body: str) -> str:
    return f"# Metrics from {result.server_name}\n{body}"


class Router:
    def __init__(
        self,
        registry: ServerRegistry,
        stats: StatsEngine,
        fetcher: ParallelFetcher,
        reporter: SelfMetricsReporter,
    ) -> None:
        self._registry = registry
        self._stats = stats
        self._fetcher = fetcher
        self._reporter = reporter

    async def dispatch(self, target: str) -> RouteResult:
        """Handle one inbound request target (path plus optional query)."""
        self._stats.record_request()

        if target == HEALTH_PATH:
            return RouteResult(
                mode="health",
                status_code=200,
                body=json.dumps({"status": "ok"}, separators=(",", ":")),
                media_type="application/json",
            )

        if target in SELF_METRICS_PATHS:
            return RouteResult(
                mode="self_metrics",
                status_code=200,
                body=self._reporter.render(),
                media_type=EXPOSITION_CONTENT_TYPE,
            )

        matched = self._registry.match_prefix(target)
        if matched:
            stripped = target[len("/" + matched[0].prefix) :]  # type: ignore[operator]
            if len(matched) == 1:
                return await self._proxy(matched[0], stripped)
            return await self._fanout(matched, stripped)

        return await self._aggregate(target)

    async def _proxy(self, server: ServerConfig, path: str) -> RouteResult:
        body = await self._fetcher.fetch_one(server, path)
        if body is None:
            # The failure itself was counted and logged by the fetcher
            return RouteResult(
                mode="proxy",
                status_code=502,
                body=PROXY_ERROR_BODY,
                media_type="text/plain",
            )
        return RouteResult(
            mode="proxy",
            status_code=200,
            body=body,
            media_type=EXPOSITION_CONTENT_TYPE,
        )

    async def _fanout(self, servers: Sequence[ServerConfig], path: str) -> RouteResult:
        results = await self._fetcher.fetch_all(servers, path)
        blocks = [_block(r, r.body) for r in results if r.body is not None]
        logger.debug(
            "Fan-out to %d server(s), %d succeeded", len(servers), len(blocks)
        )
        return RouteResult(
            mode="fanout",
            status_code=200,
            body=BLOCK_SEPARATOR.join(blocks),
            media_type=EXPOSITION_CONTENT_TYPE,
        )

    async def _aggregate(self, path: str) -> RouteResult:
        servers = list(self._registry)
        results = await self._fetcher.fetch_all(servers, path)

        blocks: list[str] = []
        for server, result in zip(servers, results):
            if result.body is None:
                continue
            body = rewrite_metrics(result.body, server.prefix) if server.prefix else result.body
            blocks.append(_block(result, body))

        logger.debug(
            "Aggregated %d server(s), %d succeeded", len(servers), len(blocks)
        )
        return RouteResult(
            mode="aggregate",
            status_code=200,
            body=BLOCK_SEPARATOR.join(blocks),
            media_type=EXPOSITION_CONTENT_TYPE,
        )
