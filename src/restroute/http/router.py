"""
=============================================================================
URL ROUTER
=============================================================================

Maps METHOD + path to a registered route and extracts route parameters.

- Literal segments:   /v1/users
- Parameters:         /v1/users/{id}
- Mixed segments:     /v1/users/{id}:deactivate   (action endpoints)
- Methods:            GET, POST, PUT, PATCH, DELETE

=============================================================================
MATCH RESULTS ARE VALUES
=============================================================================

    router.match("GET", "/v1/users/42")
        → RouteMatch(route, params={"id": "42"})

    router.match("GET", "/v1/nothing")
        → NotFound(path="/v1/nothing")

    router.match("PATCH", "/v1/users")          # only GET, POST exist
        → MethodNotAllowed(path="/v1/users", allowed=["GET", "POST"])

No exceptions for routing failures: the dispatcher shapes NotFound as a
404 problem and MethodNotAllowed as a 405 with an Allow header.

=============================================================================
PATTERN COMPILATION
=============================================================================

Each template is compiled to one anchored regex, segment by segment:

    /v1/users/{id}:deactivate
       │   │      │
       ▼   ▼      ▼
    ^/v1/users/(?P<id>[^/]+):deactivate$

    literal  "users"          → users             (re.escape)
    param    "{id}"           → (?P<id>[^/]+)
    mixed    "{id}:deactivate" → (?P<id>[^/]+):deactivate

=============================================================================
WHEN SEVERAL TEMPLATES MATCH
=============================================================================

    POST /v1/users/42:deactivate

        /v1/users/{id}              literal=2  mixed=0
        /v1/users/{id}:deactivate   literal=2  mixed=1   ← wins

Candidates are ranked by (literal segments, mixed segments), highest
first; remaining ties go to the route registered first. So /v1/users/me
beats /v1/users/{id} no matter which was registered first.

Two templates with the same method and the same shape once parameter
names are erased (/users/{id} vs /users/{key}) can never be told apart;
registering the second raises ConfigurationError.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote
import re
import logging

from .binding import BindingSpec, check_bindings
from .errors import ConfigurationError


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

# A handler receives its bound arguments as keywords and returns an Outcome
# (or an HTTPResponse).
Handler = Callable[..., Any]

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

_PARAM = re.compile(r"\{([^{}]*)\}")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Route:
    """
    A registered route. Immutable once built.

        Route(
            method="POST",
            path="/v1/users/{id}:deactivate",
            handler=deactivate_user,
            name="deactivate_user",
            bindings=(route("id", int),),
        )
    """

    method: str
    path: str
    handler: Handler
    name: Optional[str] = None
    bindings: Tuple[BindingSpec, ...] = ()

    param_names: Tuple[str, ...] = field(default=(), repr=False)
    literal_count: int = field(default=0, repr=False)
    mixed_count: int = field(default=0, repr=False)
    order: int = field(default=0, repr=False)
    _pattern: Optional[re.Pattern] = field(default=None, repr=False, compare=False)
    _shape: Tuple[str, ...] = field(default=(), repr=False, compare=False)

    @property
    def specificity(self) -> Tuple[int, int, int]:
        """Sort key: lower sorts first, so more literal wins."""
        return (-self.literal_count, -self.mixed_count, self.order)

    def matches(self, path: str) -> Optional[Dict[str, str]]:
        match = self._pattern.match(path)
        return match.groupdict() if match else None


@dataclass(frozen=True)
class RouteMatch:
    route: Route
    params: Dict[str, str]


@dataclass(frozen=True)
class NotFound:
    path: str


@dataclass(frozen=True)
class MethodNotAllowed:
    path: str
    allowed: List[str]


MatchResult = Union[RouteMatch, NotFound, MethodNotAllowed]


# =============================================================================
# TEMPLATE COMPILATION
# =============================================================================

@dataclass(frozen=True)
class CompiledTemplate:
    pattern: re.Pattern
    param_names: Tuple[str, ...]
    literal_count: int
    mixed_count: int
    shape: Tuple[str, ...]


def compile_template(template: str) -> CompiledTemplate:
    """
    Compile a "{name}" path template.

    Raises:
        ConfigurationError(INVALID_TEMPLATE): unbalanced braces, empty or
            non-identifier names, two parameters in one segment, or a
            repeated parameter name.
    """
    if not template.startswith("/"):
        raise ConfigurationError(
            f"Template must start with '/': {template!r}",
            ConfigurationError.INVALID_TEMPLATE,
        )

    param_names: List[str] = []
    regex_parts = ["^"]
    shape: List[str] = []
    literal_count = mixed_count = 0

    for segment in _normalize(template).split("/")[1:]:
        if not segment:
            if template != "/":
                raise ConfigurationError(
                    f"Empty segment in template {template!r}",
                    ConfigurationError.INVALID_TEMPLATE,
                )
            continue

        names = _PARAM.findall(segment)
        literal_text = _PARAM.sub("", segment)
        if "{" in literal_text or "}" in literal_text:
            raise ConfigurationError(
                f"Unbalanced braces in segment {segment!r} of {template!r}",
                ConfigurationError.INVALID_TEMPLATE,
            )
        if len(names) > 1:
            raise ConfigurationError(
                f"Segment {segment!r} has more than one parameter",
                ConfigurationError.INVALID_TEMPLATE,
            )

        regex_parts.append("/")
        if not names:
            literal_count += 1
            regex_parts.append(re.escape(segment))
            shape.append(segment)
            continue

        name = names[0]
        if not _IDENTIFIER.match(name):
            raise ConfigurationError(
                f"Invalid parameter name {name!r} in {template!r}",
                ConfigurationError.INVALID_TEMPLATE,
            )
        if name in param_names:
            raise ConfigurationError(
                f"Parameter {name!r} appears twice in {template!r}",
                ConfigurationError.INVALID_TEMPLATE,
            )
        param_names.append(name)

        prefix, _, suffix = segment.partition("{" + name + "}")
        if prefix or suffix:
            mixed_count += 1
        regex_parts.append(re.escape(prefix))
        regex_parts.append(f"(?P<{name}>[^/]+)")
        regex_parts.append(re.escape(suffix))
        shape.append(prefix + "{}" + suffix)

    regex_parts.append("$")
    return CompiledTemplate(
        pattern=re.compile("".join(regex_parts) if shape else "^/$"),
        param_names=tuple(param_names),
        literal_count=literal_count,
        mixed_count=mixed_count,
        shape=tuple(shape),
    )


def _normalize(path: str) -> str:
    """Leading slash, no trailing slash ("/" stays "/")."""
    return "/" + path.strip("/") if path != "/" else "/"


# =============================================================================
# ROUTER
# =============================================================================

class Router:
    """
    Route table with decorator registration, groups and reverse routing.

    ==========================================================================
    DECORATOR-BASED API
    ==========================================================================

        router = Router()

        @router.get("/v1/users/{id}", route("id", int), name="get_user")
        def get_user(id: int):
            ...

    ==========================================================================
    ROUTE GROUPS
    ==========================================================================

        v1 = router.group("/v1")

        @v1.get("/users")            # registers /v1/users
        def list_users(...):
            ...

    A group shares its parent's table, so ambiguity checks, match() and
    url_for() see every route no matter which group registered it.

    ==========================================================================
    FREEZING
    ==========================================================================

    freeze() ends registration. After it, the table is only read, so
    concurrent requests match without locks.

    ==========================================================================
    """

    def __init__(self, prefix: str = "", _parent: Optional["Router"] = None):
        self.prefix = prefix.rstrip("/")
        self._root: Router = _parent._root if _parent else self
        if _parent is None:
            self._routes: List[Route] = []
            self._named_routes: Dict[str, Route] = {}
            self._frozen = False

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        method: str,
        path: str,
        handler: Handler,
        bindings: Sequence[BindingSpec] = (),
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Raises:
            ConfigurationError: unsupported method, bad template, ambiguous
                route, invalid binding table, duplicate name, or the
                router is frozen.
        """
        root = self._root
        if root._frozen:
            raise ConfigurationError(
                f"Cannot register {method} {path}: router is frozen",
                ConfigurationError.ROUTER_FROZEN,
            )

        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"Unsupported method {method!r}",
                ConfigurationError.UNSUPPORTED_METHOD,
            )

        full_path = _normalize(self.prefix + path)
        compiled = compile_template(full_path)
        check_bindings(bindings, compiled.param_names)

        for existing in root._routes:
            if existing.method == method and existing._shape == compiled.shape:
                raise ConfigurationError(
                    f"{method} {full_path} is ambiguous with {existing.method} {existing.path}",
                    ConfigurationError.AMBIGUOUS_ROUTE,
                )

        if name and name in root._named_routes:
            raise ConfigurationError(
                f"Route name {name!r} is already registered",
                ConfigurationError.DUPLICATE_ROUTE_NAME,
            )

        route = Route(
            method=method,
            path=full_path,
            handler=handler,
            name=name,
            bindings=tuple(bindings),
            param_names=compiled.param_names,
            literal_count=compiled.literal_count,
            mixed_count=compiled.mixed_count,
            order=len(root._routes),
            _pattern=compiled.pattern,
            _shape=compiled.shape,
        )
        root._routes.append(route)
        root._routes.sort(key=lambda r: r.specificity)
        if name:
            root._named_routes[name] = route

        logger.debug("Registered %s %s", method, full_path)
        return route

    def freeze(self) -> None:
        self._root._frozen = True

    @property
    def frozen(self) -> bool:
        return self._root._frozen

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> MatchResult:
        """
        Find the best route for method + path.

        Routes are kept sorted by specificity, so the first hit for the
        method is the winner.
        """
        path = _normalize(path)
        method = method.upper()
        allowed = set()

        for route in self._root._routes:
            params = route.matches(path)
            if params is None:
                continue
            if route.method == method:
                return RouteMatch(route=route, params=params)
            allowed.add(route.method)

        if allowed:
            return MethodNotAllowed(path=path, allowed=sorted(allowed))
        return NotFound(path=path)

    # =========================================================================
    # DECORATOR-STYLE ROUTE REGISTRATION
    # =========================================================================

    def route(
        self,
        method: str,
        path: str,
        *bindings: BindingSpec,
        name: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler, bindings, name)
            return handler
        return decorator

    def get(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        """Register a GET route. Safe and idempotent."""
        return self.route("GET", path, *bindings, name=name)

    def post(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        """Register a POST route. Creates resources, runs actions."""
        return self.route("POST", path, *bindings, name=name)

    def put(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        """Register a PUT route. Full replacement, idempotent."""
        return self.route("PUT", path, *bindings, name=name)

    def patch(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        """Register a PATCH route. Partial update."""
        return self.route("PATCH", path, *bindings, name=name)

    def delete(self, path: str, *bindings: BindingSpec, name: Optional[str] = None):
        """Register a DELETE route. Idempotent."""
        return self.route("DELETE", path, *bindings, name=name)

    # =========================================================================
    # COMPOSITION
    # =========================================================================

    def group(self, prefix: str) -> "Router":
        """A view of this router that prepends `prefix` to every path."""
        return Router(self.prefix + prefix, _parent=self)

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, name: str, /, **params: Any) -> Optional[str]:
        """
        Build the path of a named route (reverse routing).

            router.url_for("get_user", id=42)   # "/v1/users/42"

        Values are percent-encoded. Returns None for an unknown name.

        Raises:
            ValueError: a template parameter was not supplied.
        """
        route = self._root._named_routes.get(name)
        if route is None:
            return None

        missing = [p for p in route.param_names if p not in params]
        if missing:
            raise ValueError(f"url_for({name!r}) is missing {', '.join(missing)}")

        return _PARAM.sub(lambda m: quote(str(params[m.group(1)]), safe=""), route.path)

    def routes(self) -> List[Route]:
        """All routes in registration order."""
        return sorted(self._root._routes, key=lambda r: r.order)
