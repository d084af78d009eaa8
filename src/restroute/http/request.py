"""
=============================================================================
HTTP REQUEST
=============================================================================

The request object every other layer reads from, plus a parser that turns
raw HTTP/1.1 bytes into one.

=============================================================================
WHERE BINDING READS FROM
=============================================================================

    POST /v1/users/42/avatar?notify=true HTTP/1.1
    Content-Type: multipart/form-data; boundary=XyZ
    Content-Length: 18234
    ─────┬───────────────────────────────────────────
         │
         ├── path            /v1/users/42/avatar   → Route source
         ├── query_params    {"notify": ["true"]}  → Query source
         ├── headers         content-type, ...     → Body/Form selection
         └── body / stream   bytes or file object  → Body / Form source

Two ways a body can arrive:

    body:   bytes already in memory (RequestParser, tests)
    stream: a readable file object bounded by Content-Length
            (WSGI adapter). Multipart uploads read from it chunk by
            chunk so a 50 MB upload never sits in memory at once.

=============================================================================
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import BinaryIO, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
import re


Address = Tuple[str, int]
QueryParams = Dict[str, List[str]]

_DIGITS = re.compile(r"[0-9]+")


class HTTPParseError(Exception):
    """
    Raw request bytes could not be turned into an HTTPRequest.

    `status_code` is what the reply should carry: 400 for bad syntax, 413
    past the size limit, 501 for a method no route can ever have, 505 for
    anything but HTTP/1.0 or HTTP/1.1.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class BodyTooLargeError(HTTPParseError):
    """A body read into memory would pass `max_body_size`."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds the {limit} byte limit", status_code=413)
        self.limit = limit


@dataclass
class HTTPRequest:
    """
    One request as every layer after the transport sees it.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         upper-case method name
        path:           percent-decoded path, no query string
        headers:        lower-case names, repeated headers joined with ", "
        query_params:   "?a=1&a=2&b=" → {"a": ["1", "2"], "b": [""]}
        body / stream:  see "Two ways a body can arrive" above
        path_params:    raw captures, set by the dispatcher after matching
        client_address: (ip, port) for access logs
        max_body_size:  cap for read_body(); None means unlimited.
                        body_stream() ignores it (uploads have their own limit)

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: QueryParams = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[BinaryIO] = field(default=None, repr=False)

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: Address = ("", 0)
    max_body_size: Optional[int] = None

    _stream_consumed: bool = field(default=False, repr=False)

    # =========================================================================
    # HEADERS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    @property
    def content_type(self) -> Optional[str]:
        """
        Media type of the body without parameters, lower-cased.

        "Multipart/Form-Data; boundary=XyZ" → "multipart/form-data"
        """
        media_type, _ = _split_content_type(self.get_header("content-type"))
        return media_type or None

    @property
    def content_type_params(self) -> Dict[str, str]:
        """'multipart/form-data; boundary="XyZ"' → {"boundary": "XyZ"}"""
        _, params = _split_content_type(self.get_header("content-type"))
        return params

    @property
    def content_length(self) -> Optional[int]:
        """None when the header is absent or not a number."""
        raw = self.get_header("content-length").strip()
        return int(raw) if _DIGITS.fullmatch(raw) else None

    @property
    def user_agent(self) -> str:
        return self.get_header("user-agent")

    # =========================================================================
    # BODY
    # =========================================================================

    @property
    def has_body(self) -> bool:
        """
        True when there is something left to read.

        A stream with no Content-Length (chunked, or a test's BytesIO) is
        assumed to carry a body; an explicit "Content-Length: 0" is not.
        """
        if self.body:
            return True
        if self.stream is None or self._stream_consumed:
            return False
        return self.content_length != 0

    def read_body(self) -> bytes:
        """
        The whole body in memory.

        Drains the stream on first call and keeps the bytes in `body`, so
        later calls (and body_stream) see the same data.

        Raises:
            BodyTooLargeError: the stream holds more than `max_body_size`
                bytes. At most one byte past the limit is read.
        """
        if self.stream is None or self._stream_consumed:
            return self.body

        limit = self.max_body_size
        if limit is None:
            data = self.stream.read()
        else:
            declared = self.content_length
            if declared is not None and declared > limit:
                raise BodyTooLargeError(limit)
            data = _read_at_most(self.stream, limit + 1)
        self._stream_consumed = True
        if limit is not None and len(data) > limit:
            raise BodyTooLargeError(limit)
        self.body = data
        return self.body

    def body_stream(self) -> BinaryIO:
        """
        The body as a file object, without buffering it.

        Hands over the live stream exactly once; after that, or when the
        body was in memory all along, wraps `body`.
        """
        if self.stream is not None and not self._stream_consumed:
            self._stream_consumed = True
            return self.stream
        return BytesIO(self.body)


def _read_at_most(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    while size > 0:
        chunk = stream.read(size)
        if not chunk:
            break
        chunks.append(chunk)
        size -= len(chunk)
    return b"".join(chunks)


def _split_content_type(header: str) -> Tuple[str, Dict[str, str]]:
    media_type, *parts = header.split(";")
    params: Dict[str, str] = {}
    for part in parts:
        name, sep, value = part.partition("=")
        if sep:
            params[name.strip().lower()] = value.strip().strip('"')
    return media_type.strip().lower(), params


def split_target(target: str) -> Tuple[str, QueryParams]:
    """
    Split a request target into (decoded path, query params).

        "/v1/users?page=2&name=Ana%20M" → ("/v1/users",
                                           {"page": ["2"], "name": ["Ana M"]})
    """
    parts = urlsplit(target)
    return unquote(parts.path) or "/", parse_qs(parts.query, keep_blank_values=True)


class RequestParser:
    """
    Turns one complete raw HTTP/1.x request into an HTTPRequest.

    Used by Dispatcher.handle_raw; the WSGI adapter builds requests from
    the environ instead.

    ==========================================================================
    STEPS
    ==========================================================================

        bytes ──► size check ──► split head / body at \\r\\n\\r\\n
                    (413)             (400 if no blank line)
                                            │
              ┌─────────────────────────────┴──────────────┐
              ▼                                            ▼
        request line                                 header lines
        METHOD SP target SP version                  name: value
        (400 / 501 / 505)                            folded lines joined,
                                                     repeats joined ", "
              └──────────────────────┬─────────────────────┘
                                     ▼
                          body cut to Content-Length
                          (400 if shorter or invalid)

    ==========================================================================
    """

    # Methods outside this set are answered with 501 before routing.
    KNOWN_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})
    VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Address = ("", 0)) -> HTTPRequest:
        """
        Raises:
            HTTPParseError: with the status code the reply should use.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request of {len(data)} bytes exceeds the {self.max_request_size} byte limit",
                status_code=413,
            )

        head, blank, rest = data.partition(b"\r\n\r\n")
        if not blank:
            raise HTTPParseError("Incomplete request: no blank line after the headers")

        request_line, *header_lines = head.decode("latin-1").split("\r\n")
        method, target, version = self._request_line(request_line)
        headers = self._headers(header_lines)
        path, query_params = split_target(target)

        request = HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            client_address=client_address,
        )
        request.body = self._body(request, rest)
        return request

    def _request_line(self, line: str) -> Tuple[str, str, str]:
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = parts
        if method not in self.KNOWN_METHODS:
            raise HTTPParseError(f"Method {method} is not implemented", status_code=501)
        if version not in self.VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)
        # Targets are UTF-8 on the wire even though the head decodes as latin-1.
        return method, target.encode("latin-1").decode("utf-8", errors="replace"), version

    @staticmethod
    def _headers(lines: List[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        last = None
        for line in lines:
            if line[:1] in (" ", "\t"):
                if last is None:
                    raise HTTPParseError("Continuation line before any header")
                headers[last] += " " + line.strip()
                continue

            name, sep, value = line.partition(":")
            name = name.strip().lower()
            if not sep or not name:
                raise HTTPParseError(f"Invalid header line: {line!r}")

            value = value.strip()
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
            last = name
        return headers

    @staticmethod
    def _body(request: HTTPRequest, rest: bytes) -> bytes:
        raw = request.get_header("content-length")
        if not raw:
            return b""
        length = request.content_length
        if length is None:
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        if len(rest) < length:
            raise HTTPParseError(f"Incomplete body: expected {length} bytes, got {len(rest)}")
        return rest[:length]
