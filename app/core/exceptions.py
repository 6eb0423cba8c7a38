import logging
import traceback
from typing import Any, Callable, TypeVar

import httpx
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from starlette.concurrency import run_in_threadpool

from app.core.config import settings

# Set up our logger
logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotFoundError(Exception):
    """A block, report or user that does not exist. Rendered as a 404 with a way back home."""

    def __init__(self, resource: str, home: str = "/"):
        self.resource = resource
        self.home = home
        super().__init__(f"{resource} not found")


async def backend_call(action: str, fn: Callable[..., T], *args: Any) -> T:
    """
    Runs one Supabase call in the threadpool. A PostgREST or transport failure
    is logged with its traceback and surfaced to the caller as "Failed to <action>".
    Anything else (a row that does not fit our models) goes to the global handler.
    """
    try:
        return await run_in_threadpool(fn, *args)
    except (APIError, httpx.HTTPError):
        logger.exception(f"Supabase call failed while trying to {action}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to {action}")


async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "home": exc.home},
    )


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catches ALL completely unhandled Python exceptions (500s) globally.
    Logs the full traceback on the server and returns the error message to the client.
    The stack trace is only echoed back in DEBUG mode.
    """
    logger.error(f"CRITICAL UNHANDLED ERROR processing {request.method} {request.url}: {exc}", exc_info=True)

    content = {
        "detail": "An unexpected system error occurred. Our engineers have been notified.",
        "error": str(exc),
    }
    if settings.DEBUG:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
