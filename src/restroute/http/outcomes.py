"""
=============================================================================
HANDLER OUTCOMES
=============================================================================

Handlers do not build HTTP responses. They return (or, for the error
cases, may raise) one of these values and the ResponseShaper turns it
into status + headers + body:

    Outcome            Status   Notes
    ───────────────    ──────   ─────────────────────────────────────
    Ok(resource)        200
    Created(r, loc)     201     Location: loc
    Accepted(info)      202     Location: optional status monitor
    NoBody()            204
    Paged(result)       200     X-Total-Count, optional Link
    NotFound()          404     ProblemDetails
    Conflict(reason)    409     ProblemDetails
    ValidationFailed    422     ProblemDetails with "errors"
                                (400 when the outcome says so, or by
                                config policy)

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .pagination import PagedResult
from .validation import FieldError, errors_by_field


class Outcome:
    """Marker base class for everything a handler may return."""


@dataclass(frozen=True)
class Ok(Outcome):
    resource: Any = None


@dataclass(frozen=True)
class Created(Outcome):
    resource: Any
    location: str


@dataclass(frozen=True)
class Accepted(Outcome):
    """
    Work was queued. `tracking` is returned as the body (a job id, a
    status document); `location` points at where to poll.
    """

    tracking: Any = None
    location: Optional[str] = None


@dataclass(frozen=True)
class NoBody(Outcome):
    pass


@dataclass(frozen=True)
class Paged(Outcome):
    result: PagedResult


@dataclass(frozen=True)
class NotFound(Outcome):
    detail: Optional[str] = None


@dataclass(frozen=True)
class Conflict(Outcome):
    reason: str


FieldErrors = Union[Mapping[str, Sequence[str]], Sequence[FieldError]]


@dataclass(frozen=True)
class ValidationFailed(Outcome):
    """
    Field-level failures.

    `errors` accepts a field → messages mapping or a list of FieldError
    (what `validate()` returns); it is normalised to the mapping form.
    `status` overrides the configured policy for this one outcome, e.g.
    400 for "your orderBy names a field that does not exist".
    """

    errors: Dict[str, List[str]] = field(default_factory=dict)
    status: Optional[int] = None
    detail: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "errors", normalize_errors(self.errors))


def normalize_errors(errors: FieldErrors) -> Dict[str, List[str]]:
    if isinstance(errors, Mapping):
        return {str(name): list(msgs) for name, msgs in errors.items()}
    return errors_by_field(list(errors))
