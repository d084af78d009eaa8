"""
=============================================================================
ERROR TAXONOMY
=============================================================================

    RestRouteError
    ├── ConfigurationError      registration time, fatal at startup
    ├── BindingError            before the handler runs → 400/413/415
    ├── DomainError             raised by handlers → 404/409/422
    │   ├── NotFoundError
    │   ├── ConflictError
    │   └── ValidationFailedError
    ├── PatchError              a patch cannot be applied → 422
    └── MultipartError          malformed multipart body → 400
        └── UploadTooLargeError → 413

Routing failures (no route, wrong method) are NOT exceptions; the router
returns NotFound / MethodNotAllowed values and the dispatcher shapes them.

A BindingError never describes just the first problem: the binder walks
every parameter and collects all failures, keyed by parameter name.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .outcomes import Conflict, FieldErrors, NotFound, Outcome, ValidationFailed


class RestRouteError(Exception):
    """Base class for every error this package raises."""


# =============================================================================
# CONFIGURATION
# =============================================================================

class ConfigurationError(RestRouteError):
    """
    A route or binding table is invalid.

    Raised while routes are being registered so a broken table stops the
    process at startup instead of failing one request at a time.
    """

    AMBIGUOUS_ROUTE = "ambiguous_route"
    INVALID_TEMPLATE = "invalid_template"
    MULTIPLE_BODY_BINDINGS = "multiple_body_bindings"
    UNKNOWN_ROUTE_PARAM = "unknown_route_param"
    DUPLICATE_PARAMETER = "duplicate_parameter"
    DUPLICATE_ROUTE_NAME = "duplicate_route_name"
    UNSUPPORTED_METHOD = "unsupported_method"
    ROUTER_FROZEN = "router_frozen"
    PIPELINE_FROZEN = "pipeline_frozen"

    def __init__(self, message: str, kind: str):
        super().__init__(message)
        self.kind = kind


# =============================================================================
# BINDING
# =============================================================================

class BindingFailureKind(str, Enum):
    MISSING_ROUTE_PARAM = "missing_route_param"
    MISSING_VALUE = "missing_value"
    TYPE_MISMATCH = "type_mismatch"
    MALFORMED_BODY = "malformed_body"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    PAYLOAD_TOO_LARGE = "payload_too_large"


@dataclass(frozen=True)
class BindingFailure:
    kind: BindingFailureKind
    message: str


class BindingError(RestRouteError):
    """
    One or more parameters could not be bound.

    Attributes:
        failures: parameter name → failures for that parameter
    """

    def __init__(self, failures: Dict[str, List[BindingFailure]]):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Could not bind parameter(s): {names}")

    @property
    def kinds(self) -> set:
        return {f.kind for failures in self.failures.values() for f in failures}

    def has(self, kind: BindingFailureKind) -> bool:
        return kind in self.kinds

    def messages(self) -> Dict[str, List[str]]:
        """The field → messages mapping a ProblemDetails carries."""
        return {
            name: [f.message for f in failures]
            for name, failures in self.failures.items()
        }


# =============================================================================
# DOMAIN
# =============================================================================

class DomainError(RestRouteError):
    """
    A handler-level failure.

    Raising one is equivalent to returning `to_outcome()`; the dispatcher
    does that conversion and never swallows the error.
    """

    def to_outcome(self) -> Outcome:
        raise NotImplementedError


class NotFoundError(DomainError):
    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or "Not Found")
        self.detail = detail

    def to_outcome(self) -> Outcome:
        return NotFound(self.detail)


class ConflictError(DomainError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_outcome(self) -> Outcome:
        return Conflict(self.reason)


class ValidationFailedError(DomainError):
    def __init__(
        self,
        errors: FieldErrors,
        status: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        self.outcome = ValidationFailed(errors, status=status, detail=detail)
        super().__init__(detail or "Validation failed")

    @property
    def errors(self) -> Dict[str, List[str]]:
        return self.outcome.errors

    def to_outcome(self) -> Outcome:
        return self.outcome


# =============================================================================
# PATCH & MULTIPART
# =============================================================================

class PatchError(RestRouteError):
    """
    A patch document is well-formed but cannot be applied to the resource
    (missing path, failed "test" operation, index out of range).
    """

    def __init__(self, message: str, path: str = "$"):
        super().__init__(message)
        self.path = path or "$"


class MalformedPatchError(RestRouteError):
    """The patch document itself is invalid (not a list, unknown op)."""


class MultipartError(RestRouteError):
    """Malformed multipart/form-data body."""


class UploadTooLargeError(MultipartError):
    """
    The multipart body passed the configured limit.

    Attributes:
        field: form field being read when the limit was hit, if known
        limit: configured maximum in bytes
    """

    def __init__(self, limit: int, field: Optional[str] = None):
        where = f" while reading field '{field}'" if field else ""
        super().__init__(f"Upload exceeds the {limit} byte limit{where}")
        self.limit = limit
        self.field = field
