"""
=============================================================================
RESTROUTE - Resource Router With Typed Binding and Shaped Responses
=============================================================================

A small HTTP resource router. Handlers declare where each argument comes
from, receive plain typed values, and return what happened; the framework
does the HTTP:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   @app.patch("/v1/users/{id}", route("id", int),                     │
    │              body("patch", PatchDocument))                           │
    │   def patch_user(id: int, patch: PatchDocument):                     │
    │       ...                                                            │
    │       return NoBody()                       → 204                    │
    │                                                                      │
    │   PATCH /v1/users/42                                                 │
    │   Content-Type: application/merge-patch+json                         │
    │   {"name": "Novo"}                                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE LAYOUT
=============================================================================

    restroute/
    ├── http/            router, binder, multipart, patch, outcomes,
    │                    shaper, problem details, request/response
    ├── middleware/      chain of responsibility, access logging
    ├── handlers/        users reference resource, health checks
    ├── dispatcher.py    match → bind → invoke → shape
    ├── app.py           Application: decorators, config, serve()
    ├── wsgi.py          WSGI adapter with streaming request bodies
    └── config.py        AppConfig

=============================================================================
"""

__version__ = "1.0.0"

from .app import Application
from .config import AppConfig
from .dispatcher import Dispatcher

__all__ = ["Application", "AppConfig", "Dispatcher", "__version__"]
