"""Render the omniplexer's own counters in exposition format.

Example output (one upstream, three samples):

  # Self metrics for Omniplexer
  omniplexer_requests_total 12
  omniplexer_errors_total 1
  omniplexer_uptime_seconds 3600
  omniplexer_server_requests_total{server="node-a"} 3
  omniplexer_server_errors_total{server="node-a"} 1
  omniplexer_server_avg_response_time_msecs{server="node-a"} 20.000
  omniplexer_server_success_rate_percent{server="node-a"} 66.67
  omniplexer_server_response_time_p50_msecs{server="node-a"} 20.000
  ...

Percentile and min/max lines only appear once a server has samples.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, generate_latest

from omniplexer.core.registry import ServerRegistry
from omniplexer.services.stats import StatsEngine, nearest_rank

EXPOSITION_CONTENT_TYPE = "text/plain; version=0.0.4"

_PERCENTILES = (("p50", 0.50), ("p95", 0.95), ("p99", 0.99))


class SelfMetricsReporter:
    def __init__(
        self,
        registry: ServerRegistry,
        stats: StatsEngine,
        *,
        collectors: CollectorRegistry | None = None,
    ) -> None:
        self._registry = registry
        self._stats = stats
        self._collectors = collectors

    def render(self) -> str:
        totals = self._stats.global_snapshot()
        lines = [
            "# Self metrics for Omniplexer",
            f"omniplexer_requests_total {totals.request_count}",
            f"omniplexer_errors_total {totals.error_count}",
            f"omniplexer_uptime_seconds {self._stats.uptime_seconds()}",
        ]

        for server in self._registry:
            lines.extend(self._server_lines(server.name))

        output = "\n".join(lines) + "\n"
        if self._collectors is not None:
            output += generate_latest(self._collectors).decode("utf-8")
        return output

    def _server_lines(self, name: str) -> list[str]:
        stats = self._stats.snapshot(name)
        label = f'{{server="{name}"}}'

        lines = [
            f"omniplexer_server_requests_total{label} {stats.request_count:d}",
            f"omniplexer_server_errors_total{label} {stats.error_count:d}",
            f"omniplexer_server_avg_response_time_msecs{label} "
            f"{self._stats.average_response_time(name):.3f}",
            f"omniplexer_server_success_rate_percent{label} "
            f"{self._stats.success_rate(name):.2f}",
        ]

        if not stats.response_times_ms:
            return lines

        for suffix, p in _PERCENTILES:
            lines.append(
                f"omniplexer_server_response_time_{suffix}_msecs{label} "
                f"{nearest_rank(stats.response_times_ms, p):.3f}"
            )
        lines.append(
            f"omniplexer_server_min_response_time_msecs{label} {stats.min_response_time_ms:.3f}"
        )
        lines.append(
            f"omniplexer_server_max_response_time_msecs{label} {stats.max_response_time_ms:.3f}"
        )
        return lines
