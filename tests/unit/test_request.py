"""
Unit tests for HTTPRequest and the raw request parser.
"""

from io import BytesIO
import json

import pytest

from restroute.http.request import (
    BodyTooLargeError,
    HTTPParseError,
    HTTPRequest,
    RequestParser,
    split_target,
)


@pytest.fixture
def parser() -> RequestParser:
    return RequestParser()


class TestRequestParser:
    """Tests for RequestParser.parse."""

    def test_list_request(self, parser, sample_get_request: bytes):
        """Test a list request with paging parameters."""
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert (request.method, request.path, request.version) == ("GET", "/v1/users", "HTTP/1.1")
        assert request.query_params == {"page": ["1"], "pageSize": ["10"]}
        assert request.user_agent == "pytest"
        assert request.client_address == ("127.0.0.1", 12345)
        assert not request.has_body

    def test_create_request(self, parser, sample_post_request: bytes):
        """Test a JSON body is cut to Content-Length."""
        request = parser.parse(sample_post_request + b"next request bytes")

        assert request.content_type == "application/json"
        assert json.loads(request.read_body()) == {"name": "Ana", "email": "ana@example.com"}

    def test_action_target(self, parser):
        """Test an action suffix and an encoded id survive parsing."""
        request = parser.parse(b"POST /v1/users/Jos%C3%A9:deactivate?notify= HTTP/1.1\r\n\r\n")

        assert request.path == "/v1/users/José:deactivate"
        assert request.query_params == {"notify": [""]}

    def test_raw_utf8_target(self, parser):
        """Test unencoded UTF-8 in the target is kept as text."""
        request = parser.parse("GET /v1/users/José HTTP/1.1\r\n\r\n".encode("utf-8"))

        assert request.path == "/v1/users/José"

    def test_header_names_lowercased_and_joined(self, parser):
        """Test header normalisation."""
        raw = (
            b"GET / HTTP/1.1\r\n"
            b"ACCEPT: application/json\r\n"
            b"Accept: application/problem+json\r\n"
            b"X-Note: first\r\n"
            b"  continued\r\n"
            b"\r\n"
        )
        request = parser.parse(raw)

        assert request.headers == {
            "accept": "application/json, application/problem+json",
            "x-note": "first continued",
        }
        assert request.get_header("Accept").startswith("application/json")

    @pytest.mark.parametrize("raw, status", [
        (b"GET\r\n\r\n", 400),
        (b"GET  /double-space HTTP/1.1\r\n\r\n", 400),
        (b"BREW /pot HTTP/1.1\r\n\r\n", 501),
        (b"GET / HTTP/2.0\r\n\r\n", 505),
        (b"GET / HTTP/1.1\r\nno colon here\r\n\r\n", 400),
        (b"GET / HTTP/1.1\r\n folded first\r\n\r\n", 400),
        (b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n", 400),
        ("POST / HTTP/1.1\r\nContent-Length: \u00b2\r\n\r\nx".encode("latin-1"), 400),
        (b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc", 400),
        (b"GET / HTTP/1.1\r\nHost: x\r\n", 400),
    ])
    def test_rejected(self, parser, raw, status):
        """Test malformed requests carry the status to reply with."""
        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == status

    def test_size_limit(self):
        """Test oversized requests are refused with 413."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 200\r\n\r\n" + b"x" * 200

        with pytest.raises(HTTPParseError) as exc_info:
            RequestParser(max_request_size=100).parse(raw)

        assert exc_info.value.status_code == 413


class TestHTTPRequest:
    """Tests for HTTPRequest properties and body access."""

    def test_content_type_params(self):
        """Test media type and parameters are split."""
        request = HTTPRequest(
            method="POST",
            path="/v1/users/42/avatar",
            headers={"content-type": 'Multipart/Form-Data; boundary="XyZ"; charset=utf-8'},
        )

        assert request.content_type == "multipart/form-data"
        assert request.content_type_params == {"boundary": "XyZ", "charset": "utf-8"}

    def test_missing_content_type(self):
        """Test no Content-Type header."""
        request = HTTPRequest(method="POST", path="/")

        assert request.content_type is None
        assert request.content_type_params == {}

    @pytest.mark.parametrize("raw, expected", [
        ("42", 42), ("lots", None), ("-1", None), ("\u00b2", None), ("\u0664\u0662", None),
    ])
    def test_content_length(self, raw, expected):
        """Test Content-Length parsing."""
        request = HTTPRequest(method="POST", path="/", headers={"content-length": raw})

        assert request.content_length == expected

    def test_streamed_body_read_once(self):
        """Test read_body drains the stream and caches the bytes."""
        request = HTTPRequest(
            method="PUT",
            path="/v1/users/42",
            headers={"content-length": "13"},
            stream=BytesIO(b'{"name":"Bo"}'),
        )

        assert request.has_body
        assert request.read_body() == b'{"name":"Bo"}'
        assert request.read_body() == b'{"name":"Bo"}'
        assert request.body_stream().read() == b'{"name":"Bo"}'

    def test_body_stream_hands_over_the_stream(self):
        """Test body_stream returns the live stream once, unbuffered."""
        stream = BytesIO(b"chunked upload")
        request = HTTPRequest(method="POST", path="/", stream=stream)

        assert request.has_body
        assert request.body_stream() is stream
        assert not request.has_body

    def test_zero_length_stream_has_no_body(self):
        """Test an explicit Content-Length: 0 means no body."""
        request = HTTPRequest(
            method="POST", path="/", headers={"content-length": "0"}, stream=BytesIO(b""),
        )

        assert not request.has_body

    def test_empty_request_has_no_body(self):
        """Test has_body for a bodyless request."""
        assert not HTTPRequest(method="GET", path="/").has_body


class TestSplitTarget:
    """Tests for split_target."""

    def test_path_and_query(self):
        """Test splitting and decoding a request target."""
        path, query = split_target("/v1/users?page=2&name=Ana%20M&tag=a&tag=b")

        assert path == "/v1/users"
        assert query == {"page": ["2"], "name": ["Ana M"], "tag": ["a", "b"]}

    def test_empty_path(self):
        """Test an empty path becomes /."""
        assert split_target("?a=1") == ("/", {"a": ["1"]})


class TestBodyLimit:
    """Tests for read_body under max_body_size."""

    def make_request(self, data: bytes, declared=None) -> HTTPRequest:
        headers = {} if declared is None else {"content-length": str(declared)}
        return HTTPRequest(
            method="POST", path="/v1/users", headers=headers,
            stream=BytesIO(data), max_body_size=16,
        )

    def test_body_at_limit(self):
        """Test a body of exactly max_body_size bytes is read."""
        request = self.make_request(b"x" * 16, declared=16)

        assert request.read_body() == b"x" * 16

    def test_declared_length_over_limit(self):
        """Test a declared oversize body is refused before reading."""
        stream = BytesIO(b"x" * 17)
        request = HTTPRequest(
            method="POST", path="/v1/users", headers={"content-length": "17"},
            stream=stream, max_body_size=16,
        )

        with pytest.raises(BodyTooLargeError) as exc_info:
            request.read_body()

        assert exc_info.value.status_code == 413
        assert exc_info.value.limit == 16
        assert stream.tell() == 0

    def test_undeclared_stream_over_limit(self):
        """Test a stream without Content-Length stops one byte past the limit."""
        stream = BytesIO(b"x" * 1000)
        request = HTTPRequest(method="POST", path="/v1/users", stream=stream, max_body_size=16)

        with pytest.raises(BodyTooLargeError):
            request.read_body()

        assert stream.tell() == 17
