from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Success:
    body: str
    status: int


@dataclass(frozen=True, slots=True)
class TransportFailure:
    """DNS, connect, TLS, or timeout: no usable HTTP response."""

    cause: str


@dataclass(frozen=True, slots=True)
class HTTPFailure:
    """The upstream answered with status >= 400."""

    status: int


Outcome = Success | TransportFailure | HTTPFailure


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Outcome of one upstream GET.  Transient: consumed by the router."""

    server_name: str
    elapsed_ms: float
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def body(self) -> str | None:
        if isinstance(self.outcome, Success):
            return self.outcome.body
        return None
