"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

The response object handed back to the transport, and a fluent builder
the ResponseShaper uses to assemble it.

=============================================================================
RESPONSE ANATOMY
=============================================================================

    HTTP/1.1 201 Created\\r\\n                     ← status line
    Location: /v1/users/42\\r\\n                   ← shaper-set headers
    Content-Type: application/json; charset=utf-8\\r\\n
    Content-Length: 24\\r\\n                       ← auto
    Date: Wed, 01 Jan 2026 12:00:00 GMT\\r\\n      ← auto
    Server: restroute/1.0\\r\\n                    ← auto
    \\r\\n
    {"id": 42, "name": "Ana"}                     ← body

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Union
import json

from pydantic_core import to_jsonable_python

from .status_codes import HTTPStatus


JSON_CONTENT_TYPE = "application/json; charset=utf-8"
PROBLEM_CONTENT_TYPE = "application/problem+json; charset=utf-8"


@dataclass
class HTTPResponse:
    """What the shaper produces and the transport writes out."""

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {HTTPStatus(self.status).phrase}"

    @property
    def json(self) -> Any:
        """Decode a JSON body (handy in tests and middleware)."""
        if not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = _encode(body)
        return self

    def header_list(self, server_name: str = "restroute/1.0") -> list[tuple[str, str]]:
        """
        Headers as sent on the wire, with the automatic ones filled in.

        Content-Length is omitted for 204 (RFC 7230 section 3.3.2).
        """
        response_headers = dict(self.headers)

        if self.status != HTTPStatus.NO_CONTENT and "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        return list(response_headers.items())

    def to_bytes(self, server_name: str = "restroute/1.0") -> bytes:
        """The full message as raw bytes, for Dispatcher.handle_raw."""
        head = [self.status_line]
        head.extend(f"{name}: {value}" for name, value in self.header_list(server_name))
        raw = _encode("\r\n".join(head) + "\r\n\r\n")
        return raw if self.status == HTTPStatus.NO_CONTENT else raw + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .header("Location", "/v1/users/42")
            .json({"id": 42, "name": "Ana"})
            .build())

    Each method returns `self` except build().
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = _encode(body)
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = _encode(text)
        return self.content_type(content_type)

    def json(self, data: Any, content_type: str = JSON_CONTENT_TYPE) -> "ResponseBuilder":
        """
        Set a JSON response body.

        Pydantic models, dataclasses, datetimes and UUIDs are converted
        with pydantic's `to_jsonable_python` before encoding.
        """
        payload = to_jsonable_python(data)
        self._body = _encode(json.dumps(payload, ensure_ascii=False))
        return self.content_type(content_type)

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def _encode(data: Union[str, bytes]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data
