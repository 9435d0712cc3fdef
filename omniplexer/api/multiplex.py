"""The single HTTP endpoint: every GET is handed to the Router.

Health, self-metrics, proxy, fan-out and aggregate are all decided by
Router.dispatch() from the request target, so the front-end registers one
catch-all route instead of one route per mode.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from omniplexer.services.router import Router

logger = logging.getLogger(__name__)

router = APIRouter(tags=["multiplex"])

INTERNAL_ERROR_BODY = "# Internal server error\n"


def get_router(request: Request) -> Router:
    """The Router built by the app lifespan."""
    return request.app.state.router


def _request_target(request: Request) -> str:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return target


@router.get("/{path:path}", include_in_schema=False)
async def multiplex(
    request: Request,
    mux: Annotated[Router, Depends(get_router)],
) -> Response:
    target = _request_target(request)
    try:
        result = await mux.dispatch(target)
    except Exception:
        # Never leak internals to the scraper; the traceback goes to the log
        request.state.route_mode = "error"
        logger.exception("Unhandled exception while routing %s", target)
        return PlainTextResponse(INTERNAL_ERROR_BODY, status_code=500)

    request.state.route_mode = result.mode
    return Response(
        content=result.body,
        status_code=result.status_code,
        media_type=result.media_type,
    )
