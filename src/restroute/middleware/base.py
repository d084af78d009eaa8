"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting concerns wrap the dispatcher as a chain of responsibility.
Each middleware sees the request on the way in and the shaped response
on the way out:

    Request ───────────────────────────────────────────────►

    ┌────────────┐    ┌────────────┐    ┌──────────────────────────────┐
    │  Logging   │───►│  (others)  │───►│ Dispatcher.dispatch          │
    │            │    │            │    │ match → bind → invoke → shape│
    └─────┬──────┘    └─────┬──────┘    └──────────────┬───────────────┘
          ▲                 ▲                          │
    ◄─────┴─────────────────┴──────────────────────────┘  Response

The dispatcher always returns a response (errors are already shaped as
problem documents), so middleware post-processing runs for 404s, binding
failures and handler crashes alike.

Like the router, a pipeline is frozen once the application starts
serving; the chain is built a single time and shared by every request.

=============================================================================
"""

from abc import ABC, abstractmethod
from functools import reduce
from typing import Callable, Iterator, List, Optional
import logging

from ..http.errors import ConfigurationError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the dispatcher itself at the end of the chain.
NextHandler = Callable[[HTTPRequest], HTTPResponse]
MiddlewareFunc = Callable[[HTTPRequest, NextHandler], HTTPResponse]


class Middleware(ABC):
    """
    One link in the chain.

        class ApiVersion(Middleware):
            def __call__(self, request, next):
                response = next(request)      # omit to short-circuit
                response.set_header("X-API-Version", "1")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    @property
    def name(self) -> str:
        return type(self).__name__


class MiddlewarePipeline:
    """
    Ordered middleware; the first added sees the request first.

        pipeline = MiddlewarePipeline().use(LoggingMiddleware(), ApiVersion())
        entry = pipeline.wrap(dispatcher.dispatch)
    """

    def __init__(self):
        self._members: List[Middleware] = []
        self._frozen = False

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """
        Raises:
            ConfigurationError: the pipeline is already serving requests.
        """
        if self._frozen:
            raise ConfigurationError(
                f"Cannot add {middleware.name}: middleware pipeline is frozen",
                ConfigurationError.PIPELINE_FROZEN,
            )
        self._members.append(middleware)
        logger.debug("Middleware #%d: %s", len(self._members), middleware.name)
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for member in middleware:
            self.add(member)
        return self

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Close the chain over `handler`.

        [A, B, C] becomes A → B → C → handler.
        """
        return reduce(_link, reversed(self._members), handler)

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(tuple(self._members))


def _link(successor: NextHandler, middleware: Middleware) -> NextHandler:
    def step(request: HTTPRequest) -> HTTPResponse:
        return middleware(request, successor)
    step.__qualname__ = f"{middleware.name}.step"
    return step


class FunctionMiddleware(Middleware):
    """Adapts a plain `(request, next) -> response` function."""

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self.func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self.func(request, next)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"FunctionMiddleware({self._name})"


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def api_version(request, next):
            response = next(request)
            response.set_header("X-API-Version", "1")
            return response

        app.use(api_version)
    """
    return FunctionMiddleware(func)
