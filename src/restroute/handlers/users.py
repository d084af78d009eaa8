"""
=============================================================================
USERS RESOURCE
=============================================================================

A complete in-memory resource showing every verb the router supports:

    GET     /v1/users                     paged list, filters, ordering
    POST    /v1/users                     create        → 201 + Location
    GET     /v1/users/{id}                read          → 200 / 404
    PUT     /v1/users/{id}                replace       → 200 / 404
    PATCH   /v1/users/{id}                merge or JSON patch → 204
    DELETE  /v1/users/{id}                delete        → 204 / 404
    POST    /v1/users/{id}:deactivate     action        → 200 / 409
    POST    /v1/users/{id}:activate       action        → 200 / 409
    POST    /v1/users/{id}/avatar         upload        → 201
    GET     /v1/users/{id}/avatar         download      → 200 / 404

    $ curl -si localhost:8080/v1/users -H 'Content-Type: application/json' \\
          -d '{"name": "Ana"}'
    HTTP/1.1 201 Created
    Location: /v1/users/42

    {"id": 42, "name": "Ana"}

Representations leave out fields still at their default, so a fresh user
is just id + name; "active": false appears once deactivated.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
import logging
import threading

from pydantic import BaseModel, ConfigDict, Field

from ..http.binding import body, form, route
from ..http.errors import ConflictError, NotFoundError
from ..http.multipart import UploadFile
from ..http.outcomes import Created, NoBody, NotFound, Ok, Outcome, Paged, ValidationFailed
from ..http.pagination import ListQuery, paginate
from ..http.patch import PatchDocument
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.validation import validate


logger = logging.getLogger(__name__)


# =============================================================================
# MODELS
# =============================================================================

class UserIn(BaseModel):
    """What clients send on create and replace."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+$")
    active: bool = True


class User(UserIn):
    id: int

    def to_resource(self) -> Dict[str, Any]:
        resource = {"id": self.id}
        resource.update(self.model_dump(exclude={"id"}, exclude_defaults=True))
        return resource


@dataclass(frozen=True)
class Avatar:
    filename: str
    content_type: str
    data: bytes

    def describe(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": len(self.data),
        }


# =============================================================================
# STORE
# =============================================================================

class UserStore:
    """
    Thread-safe in-memory users, ids counting up from `start_id`.

    Email uniqueness is checked under the same lock as the write, so two
    concurrent creates cannot both claim one address.
    """

    def __init__(self, start_id: int = 42):
        self._next_id = start_id
        self._users: Dict[int, User] = {}
        self._avatars: Dict[int, Avatar] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._users)

    def get(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def all(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def create(self, data: UserIn) -> User:
        with self._lock:
            self._check_email(data.email, None)
            user = User(id=self._next_id, **data.model_dump())
            self._users[user.id] = user
            self._next_id += 1
        logger.info("Created user %d", user.id)
        return user

    def replace(self, user_id: int, data: UserIn) -> Optional[User]:
        with self._lock:
            if user_id not in self._users:
                return None
            self._check_email(data.email, user_id)
            user = User(id=user_id, **data.model_dump())
            self._users[user_id] = user
        return user

    def delete(self, user_id: int) -> bool:
        with self._lock:
            self._avatars.pop(user_id, None)
            return self._users.pop(user_id, None) is not None

    def set_active(self, user_id: int, active: bool) -> User:
        """
        Raises:
            NotFoundError: no such user
            ConflictError: already in the requested state
        """
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError()
            if user.active == active:
                state = "active" if active else "inactive"
                raise ConflictError(f"User {user_id} is already {state}")
            user = user.model_copy(update={"active": active})
            self._users[user_id] = user
        return user

    def set_avatar(self, user_id: int, avatar: Avatar) -> None:
        with self._lock:
            if user_id not in self._users:
                raise NotFoundError()
            self._avatars[user_id] = avatar

    def get_avatar(self, user_id: int) -> Optional[Avatar]:
        return self._avatars.get(user_id)

    def _check_email(self, email: Optional[str], user_id: Optional[int]) -> None:
        if email is None:
            return
        for other in self._users.values():
            if other.email == email and other.id != user_id:
                raise ConflictError(f"Email {email} is already used by user {other.id}")


# =============================================================================
# LIST QUERIES
# =============================================================================

ORDERABLE_FIELDS = ("id", "name", "email")
FILTERABLE_FIELDS = ("name", "email", "active")


def _field_text(user: User, name: str) -> str:
    value = getattr(user, name)
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)


def _check_list_query(list_query: ListQuery) -> Optional[ValidationFailed]:
    errors: Dict[str, List[str]] = {}
    if list_query.order_by is not None and list_query.order_by not in ORDERABLE_FIELDS:
        errors["orderBy"] = [
            f"Cannot order by '{list_query.order_by}'; use one of {', '.join(ORDERABLE_FIELDS)}"
        ]
    for name in list_query.filters:
        if name not in FILTERABLE_FIELDS:
            errors[name] = [f"Unknown filter field; use one of {', '.join(FILTERABLE_FIELDS)}"]
    if errors:
        return ValidationFailed(errors, status=400)
    return None


def _select(users: List[User], list_query: ListQuery) -> List[User]:
    selected = [
        user for user in users
        if all(_field_text(user, name) == value for name, value in list_query.filters.items())
    ]
    order_by = list_query.order_by or "id"

    def sort_key(user: User):
        value = getattr(user, order_by)
        return (value is None, "" if value is None else value)

    selected.sort(key=sort_key, reverse=list_query.descending)
    return selected


# =============================================================================
# ROUTES
# =============================================================================

def create_users_api(app, store: Optional[UserStore] = None, prefix: str = "/v1/users") -> UserStore:
    """
    Register the users routes on `app` and return the backing store.
    """
    store = store if store is not None else UserStore()
    url_for: Callable[..., Optional[str]] = app.url_for

    def require(user_id: int) -> User:
        user = store.get(user_id)
        if user is None:
            raise NotFoundError()
        return user

    @app.get(prefix, *app.paging(), name="list_users")
    def list_users(**arguments: Any) -> Outcome:
        list_query = ListQuery.from_arguments(arguments)
        problem = _check_list_query(list_query)
        if problem:
            return problem
        users = _select(store.all(), list_query)
        result = paginate([u.to_resource() for u in users], list_query.page, list_query.page_size)
        return Paged(result)

    @app.post(prefix, body("user", UserIn), name="create_user")
    def create_user(user: UserIn) -> Outcome:
        created = store.create(user)
        return Created(created.to_resource(), url_for("get_user", id=created.id))

    @app.get(prefix + "/{id}", route("id", int), name="get_user")
    def get_user(id: int) -> Outcome:
        user = store.get(id)
        if user is None:
            return NotFound()
        return Ok(user.to_resource())

    @app.put(prefix + "/{id}", route("id", int), body("user", UserIn), name="replace_user")
    def replace_user(id: int, user: UserIn) -> Outcome:
        replaced = store.replace(id, user)
        if replaced is None:
            return NotFound()
        return Ok(replaced.to_resource())

    @app.patch(prefix + "/{id}", route("id", int), body("patch", PatchDocument), name="patch_user")
    def patch_user(id: int, patch: PatchDocument) -> Outcome:
        current = require(id)
        candidate = patch.apply_to(current.model_dump(exclude={"id"}))
        errors = validate(candidate, UserIn)
        if errors:
            return ValidationFailed(errors)
        store.replace(id, UserIn.model_validate(candidate))
        return NoBody()

    @app.delete(prefix + "/{id}", route("id", int), name="delete_user")
    def delete_user(id: int) -> Outcome:
        if not store.delete(id):
            return NotFound()
        return NoBody()

    @app.post(prefix + "/{id}:deactivate", route("id", int), name="deactivate_user")
    def deactivate_user(id: int) -> Outcome:
        return Ok(store.set_active(id, False).to_resource())

    @app.post(prefix + "/{id}:activate", route("id", int), name="activate_user")
    def activate_user(id: int) -> Outcome:
        return Ok(store.set_active(id, True).to_resource())

    @app.post(
        prefix + "/{id}/avatar",
        route("id", int),
        form("avatar", UploadFile),
        form("description", Optional[str], required=False),
        name="upload_avatar",
    )
    def upload_avatar(id: int, avatar: UploadFile, description: Optional[str]) -> Outcome:
        require(id)
        stored = Avatar(
            filename=avatar.filename,
            content_type=avatar.content_type,
            data=avatar.read(),
        )
        store.set_avatar(id, stored)
        resource = stored.describe()
        if description:
            resource["description"] = description
        return Created(resource, url_for("get_avatar", id=id))

    @app.get(prefix + "/{id}/avatar", route("id", int), name="get_avatar")
    def get_avatar(id: int) -> Union[Outcome, HTTPResponse]:
        require(id)
        avatar = store.get_avatar(id)
        if avatar is None:
            return NotFound(f"User {id} has no avatar")
        return (ResponseBuilder()
            .content_type(avatar.content_type)
            .header("Content-Disposition", f'inline; filename="{avatar.filename}"')
            .body(avatar.data)
            .build())

    return store
