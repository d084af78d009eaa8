"""
pytest configuration and fixtures.
"""

import json
import threading
from typing import Dict, Generator, List, Optional, Tuple
from wsgiref.simple_server import make_server
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restroute import Application, AppConfig
from restroute.app import ThreadingWSGIServer, _RequestHandler
from restroute.handlers import UserStore, create_users_api
from restroute.http import HTTPRequest


BOUNDARY = "restroute-test-boundary"


def make_request(
    method: str,
    path: str,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, List[str]]] = None,
) -> HTTPRequest:
    """An in-memory request with lowercase header names."""
    headers = {k.lower(): v for k, v in (headers or {}).items()}
    if body and "content-length" not in headers:
        headers["content-length"] = str(len(body))
    return HTTPRequest(
        method=method,
        path=path,
        headers=headers,
        query_params=query or {},
        body=body,
    )


def json_request(
    method: str,
    path: str,
    data,
    content_type: str = "application/json",
) -> HTTPRequest:
    return make_request(
        method,
        path,
        json.dumps(data).encode("utf-8"),
        {"Content-Type": content_type},
    )


def multipart_body(
    fields: Optional[Dict[str, str]] = None,
    files: Optional[Dict[str, Tuple[str, str, bytes]]] = None,
    boundary: str = BOUNDARY,
) -> bytes:
    """
    Encode a multipart/form-data body.

    files maps field name → (filename, content type, data).
    """
    parts = []
    for name, value in (fields or {}).items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n'
            f"\r\n".encode() + value.encode("utf-8") + b"\r\n"
        )
    for name, (filename, content_type, data) in (files or {}).items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n"
            f"\r\n".encode() + data + b"\r\n"
        )
    return b"".join(parts) + f"--{boundary}--\r\n".encode()


def multipart_headers(boundary: str = BOUNDARY) -> Dict[str, str]:
    return {"Content-Type": f"multipart/form-data; boundary={boundary}"}


@pytest.fixture
def config() -> AppConfig:
    """Default test configuration."""
    return AppConfig(host="127.0.0.1", port=0, log_level="WARNING")


@pytest.fixture
def store() -> UserStore:
    return UserStore()


@pytest.fixture
def app(config: AppConfig, store: UserStore) -> Application:
    """Application with the users API registered on /v1/users."""
    application = Application(config)
    create_users_api(application, store)
    return application


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /v1/users?page=1&pageSize=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Ana", "email": "ana@example.com"}'
    return (
        b"POST /v1/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )


class LiveServer:
    """An Application served by wsgiref in a background thread."""

    def __init__(self, application: Application):
        self.server = make_server(
            "127.0.0.1", 0, application.wsgi_app,
            server_class=ThreadingWSGIServer,
            handler_class=_RequestHandler,
        )
        self.port = self.server.server_port
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def live_server(app: Application) -> Generator[LiveServer, None, None]:
    """The users API over real sockets."""
    server = LiveServer(app)
    server.start()

    yield server

    server.stop()
