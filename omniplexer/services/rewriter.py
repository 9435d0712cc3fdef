"""Namespace rewriting for Prometheus/OpenMetrics exposition text.

In aggregate mode several upstreams are concatenated into one scrape.
Two node exporters both emit ``node_cpu_seconds_total``; prefixing each
upstream's names with its configured prefix keeps the series apart:

    # TYPE node_cpu_seconds_total counter      # TYPE web1_node_cpu_seconds_total counter
    node_cpu_seconds_total{cpu="0"} 12.5   ->  web1_node_cpu_seconds_total{cpu="0"} 12.5

Labels, values, and timestamps are left alone.  Applying the rewrite twice
prefixes twice; callers must only rewrite a body once.
"""

from __future__ import annotations

import re

_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*")
_METADATA_DIRECTIVES = ("# TYPE ", "# HELP ")


def _rewrite_line(line: str, prefix: str) -> str:
    trimmed = line.strip()

    if trimmed.startswith(_METADATA_DIRECTIVES):
        # "# TYPE name counter" -> ["#", "TYPE", "name counter"]
        parts = trimmed.split(" ", 2)
        if len(parts) >= 3:
            parts[2] = f"{prefix}_{parts[2]}"
            return " ".join(parts)

    if trimmed.startswith("#"):
        return line

    match = _METRIC_NAME.match(line)
    if match is None:
        return line
    name = match.group(0)
    return f"{prefix}_{name}{line[len(name):]}"


def rewrite_metrics(content: str, prefix: str) -> str:
    """Prefix every metric name in ``content`` with ``prefix_``.

    Blank lines are dropped.  Malformed metadata (``# TYPE`` with no metric
    name) and other comments pass through unchanged, as do lines that do
    not start with a metric name.
    """
    rewritten = [_rewrite_line(line, prefix) for line in content.split("\n") if line.strip()]
    return "\n".join(rewritten)
