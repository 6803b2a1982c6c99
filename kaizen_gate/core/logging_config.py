"""
Logging setup shared by the auth service and the edge.

Production writes one JSON object per line, development a colored text line.
Every HTTP request carries a short request id: it is echoed in X-Request-ID,
attached to the access line, and on the edge it becomes the edgeRequestId the
auth service stores with the login audit row.
"""

import json
import logging
import re
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from kaizen_gate.core.config import settings

REQUEST_ID_HEADER = b"x-request-id"
CONTEXT_FIELDS = ("request_id", "method", "path", "status", "duration_ms")
QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "aiomysql")
UNLOGGED_PATHS = ("/health", "/metrics")

_INBOUND_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the request context fields when present."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Console output for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", "%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = self.COLORS.get(record.levelname)
        return f"{color}{line}{self.RESET}" if color else line


def setup_logging(
    service_name: str,
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
) -> None:
    """
    Replace the root handlers with a single stdout handler.

    Args:
        service_name: kaizen-auth or kaizen-edge, stamped on JSON records
        log_level: defaults to DEBUG when settings.DEBUG is on, else INFO
        json_logs: defaults to JSON in production
    """
    level = log_level or ("DEBUG" if settings.DEBUG else "INFO")
    use_json = json_logs if json_logs is not None else settings.IS_PRODUCTION

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service_name) if use_json else ColoredFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("kaizen.logging").info(
        f"Logging configured for {service_name}: level={level}, json={use_json}"
    )


def resolve_request_id(scope) -> str:
    """Reuse a well-formed inbound X-Request-ID, otherwise mint a short one."""
    for name, value in scope.get("headers", []):
        if name == REQUEST_ID_HEADER:
            inbound = value.decode("latin-1")
            if _INBOUND_REQUEST_ID.match(inbound):
                return inbound
            break
    return uuid.uuid4().hex[:12]


class RequestLoggingMiddleware:
    """Pure ASGI middleware: request id in scope state and response header, one access line."""

    def __init__(self, app, logger_name: str = "kaizen.http"):
        self.app = app
        self.logger = logging.getLogger(logger_name)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = resolve_request_id(scope)
        scope.setdefault("state", {})["request_id"] = request_id
        started = time.perf_counter()
        response_status = 500

        async def send_with_request_id(message):
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message["status"]
                message["headers"] = [
                    *message.get("headers", []),
                    (REQUEST_ID_HEADER, request_id.encode("latin-1")),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            path = scope.get("path", "/")
            if path not in UNLOGGED_PATHS:
                duration_ms = round((time.perf_counter() - started) * 1000, 1)
                method = scope.get("method", "-")
                self.logger.log(
                    logging.WARNING if response_status >= 400 else logging.INFO,
                    f"{method} {path} {response_status} {duration_ms}ms",
                    extra={
                        "request_id": request_id,
                        "method": method,
                        "path": path,
                        "status": response_status,
                        "duration_ms": duration_ms,
                    },
                )
