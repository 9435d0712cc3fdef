"""Statistics engine: per-upstream counters and response-time percentiles.

One StatsEngine is constructed at startup and shared by reference with
every request.  It is the only owner of ServerStats/GlobalStats; other
components read copies via snapshot().

LOCKING
--------
Inside a single event loop the mutations below never await, so they are
already atomic with respect to other asyncio tasks.  The lock is there
for the other case: uvicorn with a threadpool endpoint, or tests driving
the engine from several threads.  Without it min/max updates can race
and counter increments can be lost.

PERCENTILES
------------
Nearest-rank, no interpolation: the result is always one of the recorded
samples.  For n samples and p in (0, 1]:

    index = clamp(ceil(p * n) - 1, 0, n - 1)

so n=10, p=0.50 selects the 5th-smallest sample.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterable, Sequence

from omniplexer.models.stats import GlobalStats, ServerStats


def nearest_rank(samples: Sequence[float], p: float) -> float:
    if not samples:
        raise ValueError("percentile of an empty sample set is undefined")
    if not 0 < p <= 1:
        raise ValueError(f"percentile must be in (0, 1] (got {p!r})")
    ordered = sorted(samples)
    n = len(ordered)
    index = max(0, min(n - 1, math.ceil(p * n) - 1))
    return ordered[index]


class StatsEngine:
    def __init__(
        self,
        server_names: Iterable[str] = (),
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._global = GlobalStats(start_time=clock())
        self._servers: dict[str, ServerStats] = {name: ServerStats() for name in server_names}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_request(self) -> None:
        """Count one inbound request."""
        with self._lock:
            self._global.request_count += 1

    def record_sample(self, name: str, elapsed_ms: float) -> None:
        """Count one upstream attempt and its elapsed time."""
        with self._lock:
            stats = self._servers.setdefault(name, ServerStats())
            stats.request_count += 1
            stats.response_times_ms.append(elapsed_ms)
            stats.total_response_time_ms += elapsed_ms
            if stats.min_response_time_ms is None or elapsed_ms < stats.min_response_time_ms:
                stats.min_response_time_ms = elapsed_ms
            if stats.max_response_time_ms is None or elapsed_ms > stats.max_response_time_ms:
                stats.max_response_time_ms = elapsed_ms

    def record_error(self, name: str) -> None:
        """Count one failed upstream attempt, per server and globally."""
        with self._lock:
            self._servers.setdefault(name, ServerStats()).error_count += 1
            self._global.error_count += 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, name: str) -> ServerStats:
        with self._lock:
            stats = self._servers.get(name)
            return stats.copy() if stats is not None else ServerStats()

    def global_snapshot(self) -> GlobalStats:
        with self._lock:
            return GlobalStats(
                request_count=self._global.request_count,
                error_count=self._global.error_count,
                start_time=self._global.start_time,
            )

    def uptime_seconds(self) -> int:
        return int(self._clock() - self._global.start_time)

    def percentile(self, name: str, p: float) -> float:
        """Nearest-rank percentile; raises ValueError when no samples exist."""
        with self._lock:
            stats = self._servers.get(name)
            samples = list(stats.response_times_ms) if stats is not None else []
        return nearest_rank(samples, p)

    def success_rate(self, name: str) -> float:
        # No traffic reads as fully healthy, not unknown
        with self._lock:
            stats = self._servers.get(name)
            if stats is None or stats.request_count == 0:
                return 100.0
            return (stats.request_count - stats.error_count) / stats.request_count * 100.0

    def average_response_time(self, name: str) -> float:
        with self._lock:
            stats = self._servers.get(name)
            if stats is None or stats.request_count == 0:
                return 0.0
            return stats.total_response_time_ms / stats.request_count
