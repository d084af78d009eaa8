"""
=============================================================================
HTTP LAYER
=============================================================================

Everything between "a request arrived" and "a response leaves", minus the
transport:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ ROUTER (router.py)                                                  │
    │   METHOD + path → RouteMatch | NotFound | MethodNotAllowed          │
    ├─────────────────────────────────────────────────────────────────────┤
    │ BINDER (binding.py, multipart.py, patch.py)                         │
    │   BindingSpec table + request → typed handler arguments             │
    ├─────────────────────────────────────────────────────────────────────┤
    │ OUTCOMES (outcomes.py, pagination.py, validation.py)                │
    │   what handlers return: Ok, Created, Paged, NotFound, ...           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ SHAPER (shaper.py, problem.py, response.py)                         │
    │   Outcome → status, headers, JSON or problem+json body              │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .binding import (
    BindingSource,
    BindingSpec,
    BoundArguments,
    ParameterBinder,
    body,
    form,
    paging_bindings,
    query,
    query_rest,
    route,
)
from .errors import (
    BindingError,
    BindingFailure,
    BindingFailureKind,
    ConfigurationError,
    ConflictError,
    DomainError,
    MalformedPatchError,
    MultipartError,
    NotFoundError,
    PatchError,
    RestRouteError,
    UploadTooLargeError,
    ValidationFailedError,
)
from .multipart import FormData, UploadFile
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
from .pagination import ListQuery, PagedResult, build_link_header, paginate
from .patch import JsonPatch, MergePatch, PatchDocument, PatchOperation
from .problem import ProblemDetails
from .request import BodyTooLargeError, HTTPParseError, HTTPRequest, RequestParser
from .response import HTTPResponse, ResponseBuilder
from .router import MethodNotAllowed, Route, RouteMatch, Router
from .shaper import ResponseShaper
from .status_codes import HTTPStatus
from .validation import FieldError, validate

# Router's NotFound is a match result; the outcome NotFound above is what
# handlers return. Import the router one from .router when needed.

__all__ = [
    # Binding
    "BindingSource",
    "BindingSpec",
    "BoundArguments",
    "ParameterBinder",
    "body",
    "form",
    "paging_bindings",
    "query",
    "query_rest",
    "route",

    # Errors
    "BindingError",
    "BindingFailure",
    "BindingFailureKind",
    "ConfigurationError",
    "ConflictError",
    "DomainError",
    "MalformedPatchError",
    "MultipartError",
    "NotFoundError",
    "PatchError",
    "RestRouteError",
    "UploadTooLargeError",
    "ValidationFailedError",

    # Uploads
    "FormData",
    "UploadFile",

    # Outcomes
    "Accepted",
    "Conflict",
    "Created",
    "NoBody",
    "NotFound",
    "Ok",
    "Outcome",
    "Paged",
    "ValidationFailed",

    # Pagination
    "ListQuery",
    "PagedResult",
    "build_link_header",
    "paginate",

    # Patch
    "JsonPatch",
    "MergePatch",
    "PatchDocument",
    "PatchOperation",

    # Request / response
    "BodyTooLargeError",
    "HTTPParseError",
    "HTTPRequest",
    "HTTPResponse",
    "ProblemDetails",
    "RequestParser",
    "ResponseBuilder",
    "ResponseShaper",
    "HTTPStatus",

    # Routing
    "MethodNotAllowed",
    "Route",
    "RouteMatch",
    "Router",

    # Validation
    "FieldError",
    "validate",
]
