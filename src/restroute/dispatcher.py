"""
=============================================================================
DISPATCHER
=============================================================================

The request pipeline. Strictly sequential per request:

    HTTPRequest
        │
        ▼
    ┌──────────┐  NotFound          → 404 problem
    │  MATCH   │  MethodNotAllowed  → 405 problem + Allow
    └────┬─────┘
         ▼
    ┌──────────┐  BindingError      → 400 / 413 / 415 problem with
    │   BIND   │                      per-parameter "errors"
    └────┬─────┘
         ▼
    ┌──────────┐  returns Outcome         → shaped
    │  INVOKE  │  returns HTTPResponse    → passed through
    │          │  raises DomainError      → its outcome, shaped
    │          │  raises PatchError       → 422 ValidationFailed
    │          │  raises anything else    → logged, 500 problem
    └────┬─────┘
         ▼
    ┌──────────┐
    │  SHAPE   │  → HTTPResponse
    └──────────┘

Uploads spooled during BIND are closed after INVOKE on every path, so a
handler that wants to keep a file must copy it.

Middleware wraps the whole thing: handle() runs the middleware chain with
dispatch() at its core.

=============================================================================
"""

from typing import Optional
import logging

from .http.binding import ParameterBinder
from .http.errors import BindingError, DomainError, PatchError
from .http.outcomes import Outcome, ValidationFailed
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse
from .http.router import MethodNotAllowed, NotFound, Router
from .http.shaper import ResponseShaper
from .middleware.base import MiddlewarePipeline


logger = logging.getLogger(__name__)


class Dispatcher:
    """
    match → bind → invoke → shape.

    Holds no per-request state; the router must be frozen before the first
    request so every worker thread reads the same table.
    """

    def __init__(
        self,
        router: Router,
        binder: Optional[ParameterBinder] = None,
        shaper: Optional[ResponseShaper] = None,
        pipeline: Optional[MiddlewarePipeline] = None,
        max_request_size: int = 10 * 1024 * 1024,
        server_name: str = "restroute/1.0",
    ):
        self.router = router
        self.binder = binder or ParameterBinder()
        self.shaper = shaper or ResponseShaper()
        self.pipeline = pipeline or MiddlewarePipeline()
        self.server_name = server_name
        self._parser = RequestParser(max_request_size=max_request_size)
        self._entry = self.pipeline.wrap(self.dispatch)

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Run the request through middleware and the pipeline."""
        return self._entry(request)

    def handle_raw(self, data: bytes, client_address: tuple[str, int] = ("", 0)) -> bytes:
        """
        Bytes in, bytes out: parse a raw HTTP/1.1 request, handle it, and
        serialize the response. Unparseable requests get a problem reply.
        """
        try:
            request = self._parser.parse(data, client_address)
        except HTTPParseError as e:
            logger.info("Rejected raw request from %s: %s", client_address[0] or "-", e)
            response = self.shaper.problem(e.status_code, str(e))
        else:
            response = self.handle(request)
        return response.to_bytes(self.server_name)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """The pipeline without middleware."""
        result = self.router.match(request.method, request.path)

        if isinstance(result, NotFound):
            return self.shaper.not_found(request.method, result.path)
        if isinstance(result, MethodNotAllowed):
            return self.shaper.method_not_allowed(request.method, result.path, result.allowed)

        route = result.route
        request.path_params = result.params

        try:
            bound = self.binder.bind(route.bindings, request, result.params)
        except BindingError as e:
            return self.shaper.binding_failed(e)
        except Exception:
            logger.exception(
                "Unhandled error binding %s %s for %s",
                request.method,
                request.path,
                getattr(route.handler, "__name__", repr(route.handler)),
            )
            return self.shaper.server_error()

        try:
            returned = route.handler(**bound.values)
            return self._shape(returned, request)
        except DomainError as e:
            return self.shaper.shape(e.to_outcome(), request)
        except PatchError as e:
            return self.shaper.shape(ValidationFailed({e.path: [str(e)]}), request)
        except Exception:
            logger.exception(
                "Unhandled error in %s for %s %s",
                getattr(route.handler, "__name__", repr(route.handler)),
                request.method,
                request.path,
            )
            return self.shaper.server_error()
        finally:
            bound.close()

    def _shape(self, returned, request: HTTPRequest) -> HTTPResponse:
        if isinstance(returned, HTTPResponse):
            return returned
        if isinstance(returned, Outcome):
            return self.shaper.shape(returned, request)
        raise TypeError(
            f"Handler returned {type(returned).__name__}; expected an Outcome or HTTPResponse"
        )
