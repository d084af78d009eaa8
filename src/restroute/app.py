"""
=============================================================================
APPLICATION
=============================================================================

Wires the pieces together and gives them a small decorator API:

    app = Application(AppConfig(max_upload_size=5_000_000))
    app.use(LoggingMiddleware())

    @app.get("/v1/users/{id}", route("id", int), name="get_user")
    def get_user(id: int):
        user = store.get(id)
        return Ok(user) if user else NotFound()

    app.serve()                      # threaded wsgiref server
    # or hand app.wsgi_app to any WSGI server

=============================================================================
LIFECYCLE
=============================================================================

    ┌──────────────────────┐   first request /    ┌────────────────────────┐
    │ REGISTRATION         │   app.dispatcher     │ SERVING                │
    │ routes, middleware   │ ───────────────────► │ router frozen, tables  │
    │ ConfigurationError   │                      │ read without locks     │
    │ on bad tables        │                      │                        │
    └──────────────────────┘                      └────────────────────────┘

=============================================================================
"""

from socketserver import ThreadingMixIn
from typing import Any, Callable, List, Optional, Sequence
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server
import logging
import threading

from .config import AppConfig
from .dispatcher import Dispatcher
from .http.binding import BindingSpec, ParameterBinder, paging_bindings
from .http.request import HTTPRequest
from .http.response import HTTPResponse
from .http.router import Handler, Router
from .http.shaper import ResponseShaper
from .middleware.base import Middleware, MiddlewarePipeline
from .wsgi import WSGIAdapter


logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """wsgiref server with one thread per request."""

    daemon_threads = True


class _RequestHandler(WSGIRequestHandler):
    """Send wsgiref's own request lines to debug; access logs come from middleware."""

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class Application:
    """
    A router, a binder, a shaper and a middleware pipeline built from one
    AppConfig.

    Routes may be added through the decorators here, or through
    `app.router` directly for groups:

        v1 = app.router.group("/v1")
        v1.add_route("GET", "/users", list_users, app.paging())
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or AppConfig()
        self.config.validate()

        self.router = Router()
        self.pipeline = MiddlewarePipeline()
        self.binder = ParameterBinder(
            max_upload_size=self.config.max_upload_size,
            chunk_size=self.config.upload_chunk_size,
            spool_size=self.config.upload_spool_size,
        )
        self.shaper = ResponseShaper.from_config(self.config)

        self._dispatcher: Optional[Dispatcher] = None
        self._lock = threading.Lock()

    # =========================================================================
    # CONFIGURATION METHODS
    # =========================================================================

    def use(self, middleware: Middleware) -> "Application":
        """Add middleware; first added runs outermost."""
        self.pipeline.add(middleware)
        return self

    def paging(self) -> List[BindingSpec]:
        """Standard list bindings sized by this app's config."""
        return paging_bindings(self.config.default_page_size, self.config.max_page_size)

    # =========================================================================
    # ROUTE REGISTRATION (Decorator Style)
    # =========================================================================

    def route(self, method: str, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.route(method, path, *bindings, name=name)

    def get(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.get(path, *bindings, name=name)

    def post(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.post(path, *bindings, name=name)

    def put(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.put(path, *bindings, name=name)

    def patch(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.patch(path, *bindings, name=name)

    def delete(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        return self.router.delete(path, *bindings, name=name)

    def add_route(
        self,
        method: str,
        path: str,
        handler: Handler,
        bindings: Sequence[BindingSpec] = (),
        name: Optional[str] = None,
    ):
        return self.router.add_route(method, path, handler, bindings, name)

    def url_for(self, name: str, /, **params: Any) -> Optional[str]:
        return self.router.url_for(name, **params)

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    @property
    def dispatcher(self) -> Dispatcher:
        """
        The request pipeline. Built once, on first use, which also freezes
        the router and the middleware list.
        """
        if self._dispatcher is None:
            with self._lock:
                if self._dispatcher is None:
                    self.router.freeze()
                    self.pipeline.freeze()
                    self._dispatcher = Dispatcher(
                        self.router,
                        binder=self.binder,
                        shaper=self.shaper,
                        pipeline=self.pipeline,
                        max_request_size=self.config.max_request_size,
                        server_name=self.config.server_name,
                    )
                    logger.debug("Dispatcher ready with %d route(s)", len(self.router.routes()))
        return self._dispatcher

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        return self.dispatcher.handle(request)

    def handle_raw(self, data: bytes, client_address: tuple[str, int] = ("", 0)) -> bytes:
        return self.dispatcher.handle_raw(data, client_address)

    @property
    def wsgi_app(self) -> Callable:
        return WSGIAdapter(
            self.dispatcher.handle,
            server_name=self.config.server_name,
            max_body_size=self.config.max_request_size,
        )

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def serve(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Serve with the bundled threaded wsgiref server (blocking).

        Fine for development and tests; put the WSGI app behind a real
        server in production.
        """
        host = host or self.config.host
        port = self.config.port if port is None else port

        self._setup_logging()
        server = make_server(
            host, port, self.wsgi_app,
            server_class=ThreadingWSGIServer,
            handler_class=_RequestHandler,
        )

        logger.info("Serving %s on http://%s:%d", self.config.server_name, host, server.server_port)
        for route in self.router.routes():
            logger.info("  %-7s %s", route.method, route.path)

        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            server.server_close()
            logger.info("Server stopped")

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("restroute").setLevel(level)
