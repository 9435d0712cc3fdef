from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from omniplexer.api.multiplex import router as multiplex_router
from omniplexer.core.config import SETTINGS
from omniplexer.core.logging import setup_logging
from omniplexer.core.upstreams import lifespan_upstreams
from omniplexer.middleware.metrics import MetricsMiddleware
from omniplexer.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_context_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_upstreams(app, SETTINGS):
        yield


# Every path belongs to the multiplexer, including the ones FastAPI would
# use for docs, so the interactive docs stay off in every environment.
app = FastAPI(
    title="omniplexer",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(multiplex_router)

logger.info(
    "omniplexer configured  env=%s log_level=%s port=%d config=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.config_path,
)


def run() -> None:
    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port, log_config=None)


if __name__ == "__main__":
    run()
