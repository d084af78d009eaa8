"""
Ready-made handlers: the users reference resource and health checks.
"""

from .health import HealthHandler, HealthStatus
from .users import User, UserIn, UserStore, create_users_api

__all__ = [
    "HealthHandler",
    "HealthStatus",
    "User",
    "UserIn",
    "UserStore",
    "create_users_api",
]
