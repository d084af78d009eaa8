"""
=============================================================================
RESPONSE SHAPING
=============================================================================

Turns what a handler returned into status + headers + body. Handlers say
WHAT happened; the shaper owns HOW that looks on the wire.

    Outcome                      Status  Headers                 Body
    ─────────────────────────    ──────  ──────────────────────  ──────────────
    Ok(resource)                  200                            resource
    Created(resource, location)   201    Location                resource
    Accepted(tracking, location)  202    Location (if given)     tracking
    NoBody()                      204                            (none)
    Paged(result)                 200    X-Total-Count, Link     items
    NotFound(detail)              404                            problem
    Conflict(reason)              409                            problem
    ValidationFailed(errors)      422*                           problem+errors

    * 400 when the outcome carries status=400, or when the configured
      validation policy is 400.

Errors that never reached a handler go through the same problem format:

    routing    NotFound → 404, MethodNotAllowed → 405 + Allow
    binding    BindingError → 400, 413 (payload too large), 415 (media type)
    crashes    anything else → 500

=============================================================================
"""

from typing import Any, Dict, List, Optional

from .errors import BindingError, BindingFailureKind
from .outcomes import (
    Accepted,
    Conflict,
    Created,
    NoBody,
    NotFound,
    Ok,
    Outcome,
    Paged,
    ValidationFailed,
)
from .pagination import build_link_header
from .problem import ProblemDetails
from .request import HTTPRequest
from .response import PROBLEM_CONTENT_TYPE, HTTPResponse, ResponseBuilder
from .status_codes import HTTPStatus


VALIDATION_DETAIL = "One or more validation errors occurred."
BINDING_DETAIL = "The request could not be bound."


class ResponseShaper:
    """
    Maps Outcomes and pipeline errors to HTTPResponses.

    Args:
        validation_status: status for ValidationFailed without an override
        oversize_status:   status for PAYLOAD_TOO_LARGE binding failures
        emit_link_header:  add RFC 8288 Link headers to paged responses
    """

    def __init__(
        self,
        validation_status: int = HTTPStatus.UNPROCESSABLE_ENTITY,
        oversize_status: int = HTTPStatus.PAYLOAD_TOO_LARGE,
        emit_link_header: bool = True,
    ):
        self.validation_status = HTTPStatus(validation_status)
        self.oversize_status = HTTPStatus(oversize_status)
        self.emit_link_header = emit_link_header

    @classmethod
    def from_config(cls, config) -> "ResponseShaper":
        return cls(
            validation_status=config.validation_status,
            oversize_status=config.oversize_status,
            emit_link_header=config.emit_link_header,
        )

    # =========================================================================
    # OUTCOMES
    # =========================================================================

    def shape(self, outcome: Outcome, request: Optional[HTTPRequest] = None) -> HTTPResponse:
        """
        Shape a handler outcome.

        Raises:
            TypeError: `outcome` is not an Outcome.
        """
        if isinstance(outcome, Ok):
            return self._resource(HTTPStatus.OK, outcome.resource)

        if isinstance(outcome, Created):
            response = self._resource(HTTPStatus.CREATED, outcome.resource)
            return response.set_header("Location", outcome.location)

        if isinstance(outcome, Accepted):
            response = self._resource(HTTPStatus.ACCEPTED, outcome.tracking)
            if outcome.location:
                response.set_header("Location", outcome.location)
            return response

        if isinstance(outcome, NoBody):
            return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()

        if isinstance(outcome, Paged):
            return self._paged(outcome, request)

        if isinstance(outcome, NotFound):
            return self.problem(HTTPStatus.NOT_FOUND, outcome.detail)

        if isinstance(outcome, Conflict):
            return self.problem(HTTPStatus.CONFLICT, outcome.reason)

        if isinstance(outcome, ValidationFailed):
            return self.problem(
                outcome.status or self.validation_status,
                outcome.detail or VALIDATION_DETAIL,
                errors=outcome.errors,
            )

        raise TypeError(f"Handlers must return an Outcome, got {type(outcome).__name__}")

    def _resource(self, status: HTTPStatus, resource: Any) -> HTTPResponse:
        builder = ResponseBuilder().status(status)
        if resource is not None:
            builder.json(resource)
        return builder.build()

    def _paged(self, outcome: Paged, request: Optional[HTTPRequest]) -> HTTPResponse:
        result = outcome.result
        response = self._resource(HTTPStatus.OK, list(result.items))
        response.set_header("X-Total-Count", str(result.total))

        if self.emit_link_header and request is not None:
            link = build_link_header(request.path, request.query_params, result)
            if link:
                response.set_header("Link", link)
        return response

    # =========================================================================
    # PROBLEMS
    # =========================================================================

    def problem(
        self,
        status: int,
        detail: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HTTPResponse:
        """Render a ProblemDetails as application/problem+json."""
        problem = ProblemDetails.for_status(status, detail=detail, errors=errors)
        return self.render_problem(problem, headers)

    def render_problem(
        self,
        problem: ProblemDetails,
        headers: Optional[Dict[str, str]] = None,
    ) -> HTTPResponse:
        return (ResponseBuilder()
            .status(problem.status)
            .headers(headers or {})
            .json(problem.to_dict(), content_type=PROBLEM_CONTENT_TYPE)
            .build())

    def not_found(self, method: str, path: str) -> HTTPResponse:
        return self.problem(HTTPStatus.NOT_FOUND, f"No route matches {method} {path}")

    def method_not_allowed(self, method: str, path: str, allowed: List[str]) -> HTTPResponse:
        return self.problem(
            HTTPStatus.METHOD_NOT_ALLOWED,
            f"{method} is not allowed on {path}",
            headers={"Allow": ", ".join(allowed)},
        )

    def binding_failed(self, error: BindingError) -> HTTPResponse:
        """
        400 with per-parameter errors; 413 or 415 when a failure of that
        kind is present (413 takes precedence).
        """
        if error.has(BindingFailureKind.PAYLOAD_TOO_LARGE):
            status = self.oversize_status
        elif error.has(BindingFailureKind.UNSUPPORTED_MEDIA_TYPE):
            status = HTTPStatus.UNSUPPORTED_MEDIA_TYPE
        else:
            status = HTTPStatus.BAD_REQUEST
        return self.problem(status, BINDING_DETAIL, errors=error.messages())

    def server_error(self) -> HTTPResponse:
        return self.problem(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "The server encountered an unexpected error.",
        )
