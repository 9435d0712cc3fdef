from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ServerStats:
    """Per-upstream counters.  Lives for the whole process, never reset.

    Every fetch attempt appends one sample, failures included, so a slow
    failing upstream still drags the percentiles.
    """

    request_count: int = 0
    error_count: int = 0
    total_response_time_ms: float = 0.0
    response_times_ms: list[float] = field(default_factory=list)
    min_response_time_ms: float | None = None
    max_response_time_ms: float | None = None

    def copy(self) -> ServerStats:
        return ServerStats(
            request_count=self.request_count,
            error_count=self.error_count,
            total_response_time_ms=self.total_response_time_ms,
            response_times_ms=list(self.response_times_ms),
            min_response_time_ms=self.min_response_time_ms,
            max_response_time_ms=self.max_response_time_ms,
        )


@dataclass(slots=True)
class GlobalStats:
    request_count: int = 0  # inbound requests
    error_count: int = 0  # upstream failures, all servers
    start_time: float = 0.0  # unix seconds
