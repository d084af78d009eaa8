"""
Middleware that wraps the dispatcher.

    app.use(LoggingMiddleware(log_format="json", skip_paths=["/health"]))
"""

from .base import (
    FunctionMiddleware,
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    function_middleware,
)
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "FunctionMiddleware",
    "LoggingMiddleware",
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "RequestLog",
    "function_middleware",
]
