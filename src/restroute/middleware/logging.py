"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request on the "restroute.access" logger, in either
Apache-style text or JSON:

    127.0.0.1 - - [19/Oct/2026:10:02:11 +0000] "POST /v1/users" 201 38 1.84ms id=3f2a9c1e

    {"request_id": "3f2a9c1e", "method": "POST", "path": "/v1/users",
     "status_code": 201, "content_length": 38, "duration_ms": 1.84, ...}

Every response carries the request id back as X-Request-ID. A client that
already sent one keeps it, so ids survive across proxies.

Configure the logger like any other:

    logging.getLogger("restroute.access").addHandler(file_handler)

=============================================================================
"""

from dataclasses import asdict, dataclass
from typing import Iterable, Optional
import json
import logging
import time
import uuid

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("restroute.access")

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class RequestLog:
    """Structured access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms id={self.request_id}'
        )


class LoggingMiddleware(Middleware):
    """
    Request timing, access log lines and X-Request-ID.

    Put it first in the pipeline so it sees every request, including those
    short-circuited by later middleware.

    Args:
        log_format: "text" or "json"
        include_request_id: echo X-Request-ID on the response
        log_level: level for access lines
        skip_paths: paths not logged (health checks)
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        start = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "Request failed: %s %s - %s: %s (%.2fms)",
                request.method, request.path, type(e).__name__, e, duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000

        if self.include_request_id:
            response.set_header(REQUEST_ID_HEADER, request_id)

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=_query_string(request),
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
        return response


def _query_string(request: HTTPRequest) -> str:
    return "&".join(
        f"{name}={value}"
        for name, values in request.query_params.items()
        for value in values
    )
