"""
=============================================================================
WSGI ADAPTER
=============================================================================

Bridges PEP 3333 servers to the dispatcher:

    environ ──► HTTPRequest ──► handler ──► HTTPResponse ──► start_response

    REQUEST_METHOD             → method
    PATH_INFO                  → path (decoded as UTF-8)
    QUERY_STRING               → query_params
    HTTP_*, CONTENT_TYPE,      → headers (lowercase, dashes)
    CONTENT_LENGTH
    wsgi.input                 → stream, capped at Content-Length
    REMOTE_ADDR, REMOTE_PORT   → client_address

The body is never read here. JSON binding drains the stream when it needs
the bytes, up to max_body_size (413 past it); multipart binding reads it
chunk by chunk.

=============================================================================
"""

from typing import BinaryIO, Callable, Dict, Iterable, Optional
from urllib.parse import parse_qs

from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .http.status_codes import HTTPStatus


Handler = Callable[[HTTPRequest], HTTPResponse]


class _LimitedStream:
    """A wsgi.input wrapper that stops at Content-Length."""

    def __init__(self, stream: BinaryIO, limit: int):
        self._stream = stream
        self._remaining = limit

    def read(self, size: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if size is None or size < 0 or size > self._remaining:
            size = self._remaining
        data = self._stream.read(size)
        self._remaining -= len(data)
        return data


class WSGIAdapter:
    """
    A WSGI application around a request handler.

        adapter = WSGIAdapter(dispatcher.handle, max_body_size=10_000_000)
        wsgiref.simple_server.make_server("", 8080, adapter).serve_forever()
    """

    def __init__(
        self,
        handler: Handler,
        server_name: str = "restroute/1.0",
        max_body_size: Optional[int] = None,
    ):
        self.handler = handler
        self.server_name = server_name
        self.max_body_size = max_body_size

    def __call__(self, environ: dict, start_response) -> Iterable[bytes]:
        request = self.build_request(environ, self.max_body_size)
        response = self.handler(request)

        status = HTTPStatus(response.status)
        start_response(
            f"{int(status)} {status.phrase}",
            response.header_list(self.server_name),
        )
        if status == HTTPStatus.NO_CONTENT:
            return []
        return [response.body]

    @staticmethod
    def build_request(environ: dict, max_body_size: Optional[int] = None) -> HTTPRequest:
        """
        `max_body_size` caps bodies read whole (JSON); multipart uploads
        stream past it under the binder's own upload limit.
        """
        headers = _headers_from(environ)

        try:
            content_length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            content_length = 0

        raw_path = environ.get("PATH_INFO", "") or "/"
        path = raw_path.encode("latin-1").decode("utf-8", errors="replace")

        try:
            port = int(environ.get("REMOTE_PORT") or 0)
        except ValueError:
            port = 0

        return HTTPRequest(
            method=environ.get("REQUEST_METHOD", "GET").upper(),
            path=path,
            version=environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
            headers=headers,
            query_params=parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True),
            stream=_LimitedStream(environ["wsgi.input"], content_length) if content_length else None,
            client_address=(environ.get("REMOTE_ADDR", ""), port),
            max_body_size=max_body_size,
        )


def _headers_from(environ: dict) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").lower()] = value
    if environ.get("CONTENT_TYPE"):
        headers["content-type"] = environ["CONTENT_TYPE"]
    if environ.get("CONTENT_LENGTH"):
        headers["content-length"] = environ["CONTENT_LENGTH"]
    return headers

