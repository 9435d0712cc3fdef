"""Request context middleware: request IDs, completion logs, source header.

One scrape of the aggregate endpoint can produce several upstream error
lines.  Tagging every log record with the inbound request's ID ties those
lines back to the scrape that caused them:

  ERROR Upstream transport error  server=node-a  request_id=7f3c...
  ERROR Upstream HTTP error       server=node-c  request_id=7f3c...
  INFO  GET / -> 200 (5003.1ms)                  request_id=7f3c...

The ID lives in a ContextVar rather than a thread-local: requests are
asyncio tasks sharing one thread, and each task gets its own copy of the
context.  The fetcher's per-upstream tasks are spawned by asyncio.gather
and inherit it.

Every response also carries ``X-Datasource: omniplexer`` so a scraper can
tell a multiplexed body from one served by the upstream directly.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

DATASOURCE_HEADER = "X-Datasource"
DATASOURCE_VALUE = "omniplexer"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Attach the current request ID to every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_context_filter() -> None:
    """Install the filter on the root handlers (idempotent).

    Filters on a logger only apply to records logged directly through that
    logger, so the filter goes on the handlers, which see every record that
    propagates up to the root.
    """
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, _RequestContextFilter) for f in handler.filters):
            handler.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request, log completion, tag the source.

    For every incoming request:
    1. Reads X-Request-ID (if the caller sent one) or generates a UUID
    2. Stores it in a ContextVar for the rest of the async call chain
    3. Logs a summary line on completion (method, path, status, mode, duration)
    4. Sets X-Request-ID and X-Datasource on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        token = request_id_var.set(req_id)

        try:
            start = time.monotonic()
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            route_mode = getattr(request.state, "route_mode", "unrouted")

            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "route_mode": route_mode,
                },
            )
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = req_id
        response.headers[DATASOURCE_HEADER] = DATASOURCE_VALUE
        return response
