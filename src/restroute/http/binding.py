"""
=============================================================================
PARAMETER BINDING
=============================================================================

Each route declares a table of BindingSpecs: which handler argument comes
from where, with which type. The binder reads the request according to
that table and hands the handler plain typed keyword arguments.

    @app.get("/v1/users/{id}/avatar", route("id", int), query("size", int, default=64))
    def get_avatar(id: int, size: int): ...

    GET /v1/users/42/avatar?size=128
             │                │
             ▼                ▼
       route("id", int)   query("size", int)
             │                │
             ▼                ▼
        get_avatar(id=42, size=128)

=============================================================================
SOURCES
=============================================================================

    ROUTE   a {name} segment of the matched template
    QUERY   the query string (list types take every repeated value;
            a "rest" spec takes every key no other spec claimed)
    BODY    the JSON body (or a patch document), at most one per route
    FORM    multipart/form-data fields and files, exclusive with BODY

=============================================================================
FAILURES ARE COLLECTED, NOT SHORT-CIRCUITED
=============================================================================

    GET /v1/users?page=abc&pageSize=0

    BindingError({
        "page":      [TYPE_MISMATCH "Input should be a valid integer ..."],
        "pageSize":  [TYPE_MISMATCH "Input should be greater than or equal to 1"],
    })

The client sees every problem in one 400 instead of fixing them one
round-trip at a time.

Type conversion is pydantic's lax mode: "42" → 42, "true" → True,
Literal/Enum membership, Annotated constraints, whole models for bodies.

=============================================================================
"""

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Annotated, Any, Dict, Iterable, List, Literal, Mapping, Optional,
    Sequence, Union, get_args, get_origin,
)
import json
import logging
import types

from pydantic import Field, TypeAdapter, ValidationError

from .errors import (
    BindingError,
    BindingFailure,
    BindingFailureKind,
    ConfigurationError,
    MalformedPatchError,
    MultipartError,
    UploadTooLargeError,
)
from .multipart import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SPOOL_SIZE,
    FormData,
    MultipartParser,
    UploadFile,
)
from .patch import (
    JSON_PATCH_TYPE,
    MERGE_PATCH_TYPE,
    PATCH_MEDIA_TYPES,
    JsonPatch,
    MergePatch,
    PatchDocument,
    parse_patch_document,
)
from .request import BodyTooLargeError, HTTPRequest
from .validation import field_errors_from


logger = logging.getLogger(__name__)


JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "multipart/form-data"
DEFAULT_MAX_UPLOAD_SIZE = 50_000_000


class BindingSource(str, Enum):
    ROUTE = "route"
    QUERY = "query"
    BODY = "body"
    FORM = "form"


@dataclass(frozen=True)
class BindingSpec:
    """
    Where one handler argument comes from.

    Attributes:
        name:          handler keyword argument
        source:        ROUTE, QUERY, BODY or FORM
        type:          target type for conversion
        required:      absent value is a failure instead of `default`
        default:       value used when absent and not required
        alias:         name on the wire when it differs (pageSize)
        content_types: accepted media types (BODY only)
        rest:          collect unclaimed query keys (QUERY only)
    """

    name: str
    source: BindingSource
    type: Any = str
    required: bool = False
    default: Any = None
    alias: Optional[str] = None
    content_types: Sequence[str] = ()
    rest: bool = False

    _adapter: Optional[TypeAdapter] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not _is_upload_type(self.type) and not _is_patch_type(self.type):
            object.__setattr__(self, "_adapter", TypeAdapter(self.type))

    @property
    def wire_name(self) -> str:
        return self.alias or self.name

    @property
    def is_upload(self) -> bool:
        return _is_upload_type(self.type)

    @property
    def is_sequence(self) -> bool:
        return _is_sequence_type(self.type)

    def convert(self, value: Any) -> Any:
        """Convert a raw value; raises pydantic ValidationError."""
        return self._adapter.validate_python(value)


# =============================================================================
# SPEC CONSTRUCTORS
# =============================================================================

def route(name: str, type: Any = str) -> BindingSpec:
    """A {name} segment of the route template. Always required."""
    return BindingSpec(name, BindingSource.ROUTE, type, required=True)


def query(
    name: str,
    type: Any = str,
    required: bool = False,
    default: Any = None,
    alias: Optional[str] = None,
) -> BindingSpec:
    return BindingSpec(
        name, BindingSource.QUERY, type,
        required=required, default=default, alias=alias,
    )


def query_rest(name: str, type: Any = Dict[str, str]) -> BindingSpec:
    """Every query parameter that no other query spec claims."""
    return BindingSpec(name, BindingSource.QUERY, type, default={}, rest=True)


def body(
    name: str,
    type: Any = Any,
    required: bool = True,
    content_types: Sequence[str] = (),
) -> BindingSpec:
    """
    The request body.

    `content_types` defaults to application/json, or to the patch media
    types when `type` is a PatchDocument.
    """
    if not content_types:
        content_types = _default_body_types(type)
    return BindingSpec(
        name, BindingSource.BODY, type,
        required=required, content_types=tuple(content_types),
    )


def form(
    name: str,
    type: Any = str,
    required: bool = True,
    default: Any = None,
    alias: Optional[str] = None,
) -> BindingSpec:
    """A multipart field; type it UploadFile for a file part."""
    return BindingSpec(
        name, BindingSource.FORM, type,
        required=required, default=default, alias=alias,
    )


def paging_bindings(
    default_page_size: int = 20,
    max_page_size: int = 100,
) -> List[BindingSpec]:
    """
    The standard list-endpoint parameters.

        ?page=2&pageSize=20&orderBy=name&orderDir=desc&active=true
          │       │           │            │             │
          page    page_size   order_by     order_dir     filters["active"]

    Pair with ListQuery.from_arguments(...) in the handler.
    """
    return [
        query("page", Annotated[int, Field(ge=1)], default=1),
        query(
            "page_size",
            Annotated[int, Field(ge=1, le=max_page_size)],
            default=default_page_size,
            alias="pageSize",
        ),
        query("order_by", Optional[str], alias="orderBy"),
        query("order_dir", Literal["asc", "desc"], default="asc", alias="orderDir"),
        query_rest("filters"),
    ]


# =============================================================================
# REGISTRATION-TIME CHECKS
# =============================================================================

def check_bindings(specs: Iterable[BindingSpec], route_params: Iterable[str]) -> None:
    """
    Reject a binding table that can never bind.

    Raises:
        ConfigurationError: duplicate names, more than one body source,
            body together with form, several rest specs, or a route spec
            naming a parameter the template does not have.
    """
    specs = list(specs)
    route_params = set(route_params)

    seen = set()
    for spec in specs:
        if spec.name in seen:
            raise ConfigurationError(
                f"Parameter '{spec.name}' is bound twice",
                ConfigurationError.DUPLICATE_PARAMETER,
            )
        seen.add(spec.name)

    bodies = [s for s in specs if s.source is BindingSource.BODY]
    forms = [s for s in specs if s.source is BindingSource.FORM]
    if len(bodies) > 1:
        raise ConfigurationError(
            f"At most one body parameter is allowed, got {[s.name for s in bodies]}",
            ConfigurationError.MULTIPLE_BODY_BINDINGS,
        )
    if bodies and forms:
        raise ConfigurationError(
            f"Body parameter '{bodies[0].name}' cannot be combined with form parameters",
            ConfigurationError.MULTIPLE_BODY_BINDINGS,
        )

    rests = [s for s in specs if s.source is BindingSource.QUERY and s.rest]
    if len(rests) > 1:
        raise ConfigurationError(
            "Only one query parameter may collect the remaining query string",
            ConfigurationError.DUPLICATE_PARAMETER,
        )

    for spec in specs:
        if spec.source is BindingSource.ROUTE and spec.wire_name not in route_params:
            raise ConfigurationError(
                f"Route parameter '{spec.wire_name}' is not in the path template",
                ConfigurationError.UNKNOWN_ROUTE_PARAM,
            )


# =============================================================================
# BINDER
# =============================================================================

@dataclass
class BoundArguments:
    """Keyword arguments for the handler, plus the parsed form to release."""

    values: Dict[str, Any] = field(default_factory=dict)
    form: Optional[FormData] = None

    def close(self) -> None:
        if self.form is not None:
            self.form.close()


class ParameterBinder:
    """
    Binds BindingSpec tables against requests.

    Stateless apart from upload limits, so one instance serves every
    request concurrently.
    """

    def __init__(
        self,
        max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        spool_size: int = DEFAULT_SPOOL_SIZE,
    ):
        self.max_upload_size = max_upload_size
        self.chunk_size = chunk_size
        self.spool_size = spool_size

    def bind(
        self,
        specs: Sequence[BindingSpec],
        request: HTTPRequest,
        route_params: Mapping[str, str],
    ) -> BoundArguments:
        """
        Bind every spec, collecting all failures.

        Raises:
            BindingError: one or more specs failed; any uploads already
                spooled are closed first.

        Uploads are also closed before any unexpected error propagates.
        """
        bound = BoundArguments()
        failures: Dict[str, List[BindingFailure]] = {}

        def fail(spec: BindingSpec, kind: BindingFailureKind, *messages: str) -> None:
            failures.setdefault(spec.wire_name, []).extend(
                BindingFailure(kind, message) for message in messages
            )

        claimed = {
            s.wire_name for s in specs
            if s.source is BindingSource.QUERY and not s.rest
        }
        form_specs = [s for s in specs if s.source is BindingSource.FORM]

        try:
            if form_specs:
                bound.form = self._read_form(form_specs, request, fail)

            for spec in specs:
                if spec.source is BindingSource.ROUTE:
                    self._bind_route(spec, route_params, bound, fail)
                elif spec.source is BindingSource.QUERY:
                    self._bind_query(spec, request, claimed, bound, fail)
                elif spec.source is BindingSource.BODY:
                    self._bind_body(spec, request, bound, fail)
                elif bound.form is not None:
                    self._bind_form(spec, bound.form, bound, fail)
        except Exception:
            bound.close()
            raise

        if failures:
            bound.close()
            error = BindingError(failures)
            logger.info("Binding failed for %s %s: %s", request.method, request.path, error.messages())
            raise error
        return bound

    # =========================================================================
    # PER-SOURCE BINDING
    # =========================================================================

    def _bind_route(self, spec, route_params, bound, fail) -> None:
        if spec.wire_name not in route_params:
            fail(
                spec,
                BindingFailureKind.MISSING_ROUTE_PARAM,
                f"Route parameter '{spec.wire_name}' is missing",
            )
            return
        self._convert_into(spec, route_params[spec.wire_name], bound, fail)

    def _bind_query(self, spec, request, claimed, bound, fail) -> None:
        if spec.rest:
            rest = {
                key: values[0]
                for key, values in request.query_params.items()
                if key not in claimed and values
            }
            self._convert_into(spec, rest, bound, fail)
            return

        values = request.query_params.get(spec.wire_name)
        if not values:
            self._missing(spec, f"Query parameter '{spec.wire_name}' is required", bound, fail)
            return
        raw = list(values) if spec.is_sequence else values[0]
        self._convert_into(spec, raw, bound, fail)

    def _bind_body(self, spec, request, bound, fail) -> None:
        try:
            data = request.read_body()
        except BodyTooLargeError as e:
            fail(spec, BindingFailureKind.PAYLOAD_TOO_LARGE, str(e))
            return
        if not data:
            if spec.required:
                fail(spec, BindingFailureKind.MALFORMED_BODY, "A request body is required")
            else:
                bound.values[spec.name] = deepcopy(spec.default)
            return

        content_type = request.content_type
        if content_type not in spec.content_types:
            fail(
                spec,
                BindingFailureKind.UNSUPPORTED_MEDIA_TYPE,
                f"Content type {content_type or '(none)'} is not supported; "
                f"expected one of {', '.join(spec.content_types)}",
            )
            return

        try:
            payload = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            fail(spec, BindingFailureKind.MALFORMED_BODY, f"Malformed JSON body: {e}")
            return
        except RecursionError:
            fail(spec, BindingFailureKind.MALFORMED_BODY, "Malformed JSON body: nested too deeply")
            return

        if _is_patch_type(spec.type):
            try:
                bound.values[spec.name] = parse_patch_document(content_type, payload)
            except MalformedPatchError as e:
                fail(spec, BindingFailureKind.MALFORMED_BODY, str(e))
            return

        try:
            bound.values[spec.name] = spec.convert(payload)
        except ValidationError as exc:
            fail(spec, BindingFailureKind.TYPE_MISMATCH, *_body_messages(exc))

    def _bind_form(self, spec, form_data: FormData, bound, fail) -> None:
        if spec.is_upload:
            uploads = form_data.files.get(spec.wire_name)
            if not uploads:
                self._missing(spec, f"File field '{spec.wire_name}' is required", bound, fail)
            elif spec.is_sequence:
                bound.values[spec.name] = list(uploads)
            else:
                bound.values[spec.name] = uploads[0]
            return

        values = form_data.fields.get(spec.wire_name)
        if not values:
            self._missing(spec, f"Form field '{spec.wire_name}' is required", bound, fail)
            return
        raw = list(values) if spec.is_sequence else values[0]
        self._convert_into(spec, raw, bound, fail)

    # =========================================================================
    # MULTIPART
    # =========================================================================

    def _read_form(self, form_specs, request: HTTPRequest, fail) -> Optional[FormData]:
        """
        Parse the multipart body once for all form specs.

        Oversize bodies are refused from Content-Length before reading a
        byte, and again while streaming for bodies that lie about it.
        """
        file_specs = [s for s in form_specs if s.is_upload] or form_specs

        if not request.has_body:
            return FormData()

        if request.content_type != FORM_MEDIA_TYPE:
            for spec in form_specs:
                fail(
                    spec,
                    BindingFailureKind.UNSUPPORTED_MEDIA_TYPE,
                    f"Content type {request.content_type or '(none)'} is not supported; "
                    f"expected {FORM_MEDIA_TYPE}",
                )
            return None

        declared = request.content_length
        if declared is not None and declared > self.max_upload_size:
            for spec in file_specs:
                fail(
                    spec,
                    BindingFailureKind.PAYLOAD_TOO_LARGE,
                    f"Upload exceeds the {self.max_upload_size} byte limit",
                )
            return None

        boundary = request.content_type_params.get("boundary", "")
        try:
            parser = MultipartParser(
                boundary.encode("latin-1"),
                max_size=self.max_upload_size,
                chunk_size=self.chunk_size,
                spool_size=self.spool_size,
            )
            return parser.parse(request.body_stream())
        except UploadTooLargeError as e:
            named = [s for s in form_specs if s.wire_name == e.field]
            for spec in named or file_specs:
                fail(spec, BindingFailureKind.PAYLOAD_TOO_LARGE, str(e))
        except (MultipartError, UnicodeEncodeError) as e:
            for spec in form_specs:
                fail(spec, BindingFailureKind.MALFORMED_BODY, f"Malformed multipart body: {e}")
        return None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _missing(self, spec, message, bound, fail) -> None:
        if spec.required:
            fail(spec, BindingFailureKind.MISSING_VALUE, message)
        else:
            bound.values[spec.name] = deepcopy(spec.default)

    def _convert_into(self, spec, raw, bound, fail) -> None:
        try:
            bound.values[spec.name] = spec.convert(raw)
        except ValidationError as exc:
            fail(spec, BindingFailureKind.TYPE_MISMATCH, *(e["msg"] for e in exc.errors()))


def _body_messages(exc: ValidationError) -> List[str]:
    """'name: Field required' per failing body member; bare message at root."""
    messages = []
    for error in field_errors_from(exc):
        if error.field == "$":
            messages.append(error.message)
        else:
            messages.append(f"{error.field}: {error.message}")
    return messages


# =============================================================================
# TYPE INSPECTION
# =============================================================================

def _unwrap(tp: Any) -> Any:
    """Strip Annotated[...] and Optional[...] down to the core type."""
    while True:
        origin = get_origin(tp)
        if origin is Annotated:
            tp = get_args(tp)[0]
        elif origin in (Union, types.UnionType):
            args = [a for a in get_args(tp) if a is not type(None)]
            if len(args) != 1:
                return tp
            tp = args[0]
        else:
            return tp


def _is_sequence_type(tp: Any) -> bool:
    return get_origin(_unwrap(tp)) in (list, tuple, set, frozenset)


def _is_upload_type(tp: Any) -> bool:
    core = _unwrap(tp)
    if _is_sequence_type(core):
        args = get_args(core)
        core = _unwrap(args[0]) if args else None
    return core is UploadFile


def _is_patch_type(tp: Any) -> bool:
    core = _unwrap(tp)
    return isinstance(core, type) and issubclass(core, PatchDocument)


def _default_body_types(tp: Any) -> Sequence[str]:
    core = _unwrap(tp)
    if core is MergePatch:
        return (MERGE_PATCH_TYPE,)
    if core is JsonPatch:
        return (JSON_PATCH_TYPE,)
    if _is_patch_type(core):
        return PATCH_MEDIA_TYPES
    return (JSON_MEDIA_TYPE,)
