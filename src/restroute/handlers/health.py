"""
=============================================================================
HEALTH CHECK HANDLERS
=============================================================================

    GET /health         all registered checks; 200 if every one passes,
                        503 otherwise
    GET /health/live    the process answers at all (always 200)

    {
        "status": "healthy",
        "uptime_seconds": 3600.2,
        "checks": {
            "users_store": {"status": "healthy", "message": "42 users"}
        }
    }

Responses carry Cache-Control: no-store so monitors never see a stale answer.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict
import logging
import time

from ..http.outcomes import Ok
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Result of one check."""

    healthy: bool
    message: str = "OK"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "status": "healthy" if self.healthy else "unhealthy",
            "message": self.message,
            **self.details,
        }


HealthCheck = Callable[[], HealthStatus]


class HealthHandler:
    """
    Health endpoints with pluggable checks.

        health = HealthHandler()
        health.add_check("users_store", lambda: HealthStatus(True, f"{len(store)} users"))
        health.register(app)
    """

    def __init__(self, include_details: bool = True):
        self.include_details = include_details
        self._checks: Dict[str, HealthCheck] = {}
        self._start_time = time.monotonic()

    def add_check(self, name: str, check: HealthCheck) -> "HealthHandler":
        self._checks[name] = check
        return self

    def register(self, app, prefix: str = "/health") -> None:
        app.add_route("GET", prefix, self.handle)
        app.add_route("GET", prefix + "/live", self.liveness)

    def handle(self) -> HTTPResponse:
        results = {}
        healthy = True
        for name, check in self._checks.items():
            try:
                status = check()
            except Exception as e:
                logger.warning("Health check %s raised %s: %s", name, type(e).__name__, e)
                status = HealthStatus(healthy=False, message=f"{type(e).__name__}: {e}")
            results[name] = status.to_dict()
            healthy = healthy and status.healthy

        body: Dict[str, Any] = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime_seconds": round(time.monotonic() - self._start_time, 1),
        }
        if self.include_details:
            body["checks"] = results

        return (ResponseBuilder()
            .status(HTTPStatus.OK if healthy else HTTPStatus.SERVICE_UNAVAILABLE)
            .header("Cache-Control", "no-store")
            .json(body)
            .build())

    def liveness(self) -> Ok:
        return Ok({"status": "alive"})
