"""Prometheus metrics middleware for the inbound HTTP surface.

For each request this middleware:
  1. Increments ACTIVE_REQUESTS (decremented on completion)
  2. Times the request
  3. On completion: increments REQUEST_COUNT and observes REQUEST_DURATION,
     labelled with the routing mode the endpoint chose

The endpoint records its mode on ``request.state.route_mode``.  Requests
that never reach it (405 for non-GET methods) are labelled "unrouted".
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from omniplexer.core.metrics import ACTIVE_REQUESTS, REQUEST_COUNT, REQUEST_DURATION


def _route_mode(request: Request) -> str:
    return getattr(request.state, "route_mode", "unrouted")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect Prometheus metrics for every inbound request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ACTIVE_REQUESTS.inc()
        start = time.monotonic()
        status_code: str | None = None

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.monotonic() - start
            ACTIVE_REQUESTS.dec()
            route_mode = _route_mode(request)
            REQUEST_COUNT.labels(
                method=request.method,
                route_mode=route_mode,
                status_code=status_code if status_code is not None else "500",
            ).inc()
            REQUEST_DURATION.labels(
                method=request.method,
                route_mode=route_mode,
            ).observe(duration)

        return response
