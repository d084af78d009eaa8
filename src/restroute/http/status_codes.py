"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a resource API actually speaks, with reason phrases.

=============================================================================
STATUS CODES BY VERB
=============================================================================

    ┌──────────┬──────────────────────────┬─────────────────────────────┐
    │  Verb    │  Success                 │  Typical failures           │
    ├──────────┼──────────────────────────┼─────────────────────────────┤
    │  GET     │  200 OK                  │  404                        │
    │  POST    │  201 Created + Location  │  400, 409, 413, 415         │
    │  PUT     │  200 OK / 204 No Content │  400, 404                   │
    │  PATCH   │  200 OK / 204 No Content │  400, 404, 422              │
    │  DELETE  │  204 No Content          │  404                        │
    │  action  │  200 / 202 Accepted      │  documented per action      │
    └──────────┴──────────────────────────┴─────────────────────────────┘

400 vs 422: 400 means the request could not be read (bad JSON, a
non-numeric page number). 422 means it was read fine but breaks a domain
rule (empty name, unknown state transition). Which one a validation
failure uses is a policy switch in AppConfig.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.CREATED == 201
        True
        >>> HTTPStatus.CREATED.phrase
        'Created'
    """

    # =========================================================================
    # 2xx SUCCESS
    # =========================================================================
    OK = 200                            # Resource returned
    CREATED = 201                       # Resource created, Location points at it
    ACCEPTED = 202                      # Work queued, finishes later
    NO_CONTENT = 204                    # Success, nothing to return

    # =========================================================================
    # 4xx CLIENT ERRORS
    # =========================================================================
    BAD_REQUEST = 400                   # Request could not be bound
    NOT_FOUND = 404                     # No route, or no such resource
    METHOD_NOT_ALLOWED = 405            # Path exists, verb does not
    CONFLICT = 409                      # Clashes with current resource state
    PAYLOAD_TOO_LARGE = 413             # Upload over the configured limit
    UNSUPPORTED_MEDIA_TYPE = 415        # Body content type not accepted
    UNPROCESSABLE_ENTITY = 422          # Well-formed but breaks a domain rule

    # =========================================================================
    # 5xx SERVER ERRORS
    # =========================================================================
    INTERNAL_SERVER_ERROR = 500         # Handler crashed
    NOT_IMPLEMENTED = 501               # Raw parser saw an unknown method
    SERVICE_UNAVAILABLE = 503           # A health check is failing
    HTTP_VERSION_NOT_SUPPORTED = 505    # Raw parser saw an unknown version

    @property
    def phrase(self) -> str:
        """Reason phrase, also used as the ProblemDetails title."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.ACCEPTED: "Accepted",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.CONFLICT: "Conflict",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
