"""
=============================================================================
PROBLEM DETAILS (RFC 7807)
=============================================================================

Every user-visible error, whatever produced it, renders as one shape:

    {
      "title": "Bad Request",
      "status": 400,
      "detail": "The request could not be bound.",
      "errors": {
        "page":  ["Input should be a valid integer ..."],
        "user":  ["name: Field required"]
      }
    }

    type     URI identifying the problem kind. "about:blank" means "the
             status code says it all" and is left out of the body.
    title    Short summary; here always the status reason phrase.
    status   The HTTP status, repeated for clients that lose headers.
    detail   Human-readable explanation for this occurrence.
    errors   Field name → messages. Only validation and binding
             failures fill it; the key set is stable per endpoint.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .status_codes import HTTPStatus


ABOUT_BLANK = "about:blank"


@dataclass
class ProblemDetails:
    """Structured error body, built per request and discarded after."""

    status: int
    title: str
    detail: Optional[str] = None
    type: str = ABOUT_BLANK
    instance: Optional[str] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def for_status(
        cls,
        status: int,
        detail: Optional[str] = None,
        errors: Optional[Dict[str, List[str]]] = None,
        type: str = ABOUT_BLANK,
        instance: Optional[str] = None,
    ) -> "ProblemDetails":
        """Build a problem whose title is the status reason phrase."""
        return cls(
            status=int(status),
            title=HTTPStatus(status).phrase,
            detail=detail,
            type=type,
            instance=instance,
            errors=dict(errors or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; empty optional members are omitted."""
        body: Dict[str, Any] = {}
        if self.type != ABOUT_BLANK:
            body["type"] = self.type
        body["title"] = self.title
        body["status"] = self.status
        if self.detail:
            body["detail"] = self.detail
        if self.instance:
            body["instance"] = self.instance
        if self.errors:
            body["errors"] = {name: list(msgs) for name, msgs in self.errors.items()}
        return body
