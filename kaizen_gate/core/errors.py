"""
Error taxonomy and HTTP error envelope shared by the auth service and the edge.

Expected business outcomes are raised as GateError and rendered as
``{"status": ..., "error": ...}``. Anything else is an infrastructure failure
and is reported to the browser only as an opaque ``server-error``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("kaizen.errors")

SERVER_ERROR = "server-error"


class GateError(Exception):
    """An expected outcome that maps to a non-2xx response."""

    def __init__(
        self,
        status_code: int,
        status: str,
        headers: Optional[dict[str, str]] = None,
        **extra: Any,
    ):
        super().__init__(status)
        self.status_code = status_code
        self.status = status
        self.headers = headers
        self.extra = extra

    def to_content(self) -> dict[str, Any]:
        return {"status": self.status, "error": self.status, **self.extra}


class StoreUnavailableError(Exception):
    """The credential store could not be reached or did not answer in time."""


def error_content(status_value: str, **extra: Any) -> dict[str, Any]:
    return {"status": status_value, "error": status_value, **extra}


async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_content(), headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies are input errors; field details are not echoed back.
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_content("bad-request"))


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for infrastructure failures (store down, timeouts, bugs).
    The reference id is logged with the traceback and returned to the caller.
    """
    error_id = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    logger.error(
        f"Unhandled exception [{error_id}] on {request.method} {request.url.path}: "
        f"{exc.__class__.__name__}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_content(SERVER_ERROR, reference=error_id),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GateError, gate_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, server_error_handler)
    app.add_exception_handler(StoreUnavailableError, server_error_handler)
    app.add_exception_handler(asyncio.TimeoutError, server_error_handler)
    app.add_exception_handler(Exception, server_error_handler)
