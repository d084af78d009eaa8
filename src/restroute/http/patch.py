"""
=============================================================================
PATCH DOCUMENTS
=============================================================================

PATCH bodies come in two flavours, told apart by Content-Type:

    application/merge-patch+json  (RFC 7386)      → MergePatch
    application/json-patch+json   (RFC 6902)      → JsonPatch

    MERGE PATCH                          JSON PATCH
    ─────────────────────────            ──────────────────────────────────
    {"name": "Novo",                     [{"op": "replace",
     "email": null}                        "path": "/name", "value": "Novo"},
                                          {"op": "remove", "path": "/email"}]

    Only listed members change.          An ordered list of explicit steps.
    null deletes a member.               Any step failing fails the patch.
    Nested objects merge recursively.    Paths are JSON Pointers (RFC 6901).

Both share one operation:

    patched = document.apply_to(resource)

It works on a deep copy, so the caller's resource is untouched whether the
patch succeeds or raises PatchError. The dispatcher turns an unhandled
PatchError into a 422 ValidationFailed keyed by the failing path.

=============================================================================
"""

from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, ClassVar, List, Optional, Sequence
import re

from .errors import MalformedPatchError, PatchError


MERGE_PATCH_TYPE = "application/merge-patch+json"
JSON_PATCH_TYPE = "application/json-patch+json"

# RFC 6901 array index: ASCII digits, no leading zero.
_ARRAY_INDEX = re.compile(r"0|[1-9][0-9]*")


class PatchDocument(ABC):
    """Base of the patch tagged union; `media_type` is the tag."""

    media_type: ClassVar[str]

    @abstractmethod
    def apply_to(self, resource: Any) -> Any:
        """Return the patched copy of `resource`, or raise PatchError."""


# =============================================================================
# MERGE PATCH
# =============================================================================

@dataclass(frozen=True)
class MergePatch(PatchDocument):
    """RFC 7386 JSON Merge Patch."""

    media_type: ClassVar[str] = MERGE_PATCH_TYPE

    patch: Any

    def apply_to(self, resource: Any) -> Any:
        return _merge(deepcopy(resource), self.patch)


def _merge(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return deepcopy(patch)
    if not isinstance(target, dict):
        target = {}
    for name, value in patch.items():
        if value is None:
            target.pop(name, None)
        else:
            target[name] = _merge(target.get(name), value)
    return target


# =============================================================================
# JSON PATCH
# =============================================================================

_MISSING = object()


@dataclass(frozen=True)
class PatchOperation:
    op: str
    path: str
    value: Any = None
    from_: Optional[str] = None


@dataclass(frozen=True)
class JsonPatch(PatchDocument):
    """RFC 6902 JSON Patch: add, remove, replace, move, copy, test."""

    media_type: ClassVar[str] = JSON_PATCH_TYPE

    operations: Sequence[PatchOperation]

    OPERATIONS: ClassVar[frozenset] = frozenset(
        {"add", "remove", "replace", "move", "copy", "test"}
    )

    @classmethod
    def from_json(cls, payload: Any) -> "JsonPatch":
        """
        Build from a decoded JSON body.

        Raises:
            MalformedPatchError: not a list, unknown op, missing member.
        """
        if not isinstance(payload, list):
            raise MalformedPatchError("A JSON Patch document must be an array")

        operations = []
        for index, raw in enumerate(payload):
            if not isinstance(raw, dict):
                raise MalformedPatchError(f"Operation {index} must be an object")

            op = raw.get("op")
            if op not in cls.OPERATIONS:
                raise MalformedPatchError(f"Operation {index} has unknown op {op!r}")

            path = raw.get("path")
            if not isinstance(path, str):
                raise MalformedPatchError(f"Operation {index} needs a string 'path'")
            _split_pointer(path, MalformedPatchError)

            if op in ("add", "replace", "test") and "value" not in raw:
                raise MalformedPatchError(f"Operation {index} ({op}) needs a 'value'")

            from_ = raw.get("from")
            if op in ("move", "copy"):
                if not isinstance(from_, str):
                    raise MalformedPatchError(f"Operation {index} ({op}) needs a 'from'")
                _split_pointer(from_, MalformedPatchError)

            operations.append(PatchOperation(op, path, raw.get("value"), from_))
        return cls(tuple(operations))

    def apply_to(self, resource: Any) -> Any:
        document = deepcopy(resource)
        for operation in self.operations:
            document = _apply_operation(document, operation)
        return document


def _apply_operation(document: Any, operation: PatchOperation) -> Any:
    op, path = operation.op, operation.path

    if op == "add":
        return _add(document, path, deepcopy(operation.value))
    if op == "remove":
        return _remove(document, path)
    if op == "replace":
        return _replace(document, path, deepcopy(operation.value))
    if op == "move":
        if path != operation.from_ and path.startswith(operation.from_ + "/"):
            raise PatchError("Cannot move a value into one of its children", path)
        value = _get(document, operation.from_)
        return _add(_remove(document, operation.from_), path, value)
    if op == "copy":
        return _add(document, path, deepcopy(_get(document, operation.from_)))
    # test
    if _get(document, path) != operation.value:
        raise PatchError(f"Test failed at '{path}'", path)
    return document


def _split_pointer(pointer: str, error=PatchError) -> List[str]:
    """
    "/a/b~1c/0" → ["a", "b/c", "0"]; "" is the whole document.
    """
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise error(f"Invalid JSON Pointer {pointer!r}")
    return [t.replace("~1", "/").replace("~0", "~") for t in pointer[1:].split("/")]


def _index(token: str, length: int, path: str, allow_end: bool = False) -> int:
    if token == "-" and allow_end:
        return length
    if not _ARRAY_INDEX.fullmatch(token):
        raise PatchError(f"Invalid array index {token!r}", path)
    index = int(token)
    upper = length if allow_end else length - 1
    if index > upper:
        raise PatchError(f"Array index {index} out of range", path)
    return index


def _parent(document: Any, tokens: List[str], path: str) -> Any:
    current = document
    for token in tokens[:-1]:
        current = _child(current, token, path)
    return current


def _child(container: Any, token: str, path: str) -> Any:
    if isinstance(container, dict):
        value = container.get(token, _MISSING)
        if value is _MISSING:
            raise PatchError(f"Path '{path}' does not exist", path)
        return value
    if isinstance(container, list):
        return container[_index(token, len(container), path)]
    raise PatchError(f"Path '{path}' does not exist", path)


def _get(document: Any, path: str) -> Any:
    current = document
    for token in _split_pointer(path):
        current = _child(current, token, path)
    return current


def _add(document: Any, path: str, value: Any) -> Any:
    tokens = _split_pointer(path)
    if not tokens:
        return value
    parent = _parent(document, tokens, path)
    last = tokens[-1]
    if isinstance(parent, dict):
        parent[last] = value
    elif isinstance(parent, list):
        parent.insert(_index(last, len(parent), path, allow_end=True), value)
    else:
        raise PatchError(f"Path '{path}' does not exist", path)
    return document


def _replace(document: Any, path: str, value: Any) -> Any:
    tokens = _split_pointer(path)
    if not tokens:
        return value
    parent = _parent(document, tokens, path)
    last = tokens[-1]
    if isinstance(parent, dict):
        if last not in parent:
            raise PatchError(f"Path '{path}' does not exist", path)
        parent[last] = value
    elif isinstance(parent, list):
        parent[_index(last, len(parent), path)] = value
    else:
        raise PatchError(f"Path '{path}' does not exist", path)
    return document


def _remove(document: Any, path: str) -> Any:
    tokens = _split_pointer(path)
    if not tokens:
        raise PatchError("Cannot remove the whole document", path)
    parent = _parent(document, tokens, path)
    last = tokens[-1]
    if isinstance(parent, dict):
        if last not in parent:
            raise PatchError(f"Path '{path}' does not exist", path)
        del parent[last]
    elif isinstance(parent, list):
        parent.pop(_index(last, len(parent), path))
    else:
        raise PatchError(f"Path '{path}' does not exist", path)
    return document


# =============================================================================
# SELECTION BY CONTENT TYPE
# =============================================================================

PATCH_MEDIA_TYPES = (MERGE_PATCH_TYPE, JSON_PATCH_TYPE)


def parse_patch_document(content_type: Optional[str], payload: Any) -> PatchDocument:
    """
    Pick the PatchDocument variant for a request's Content-Type.

    Raises:
        MalformedPatchError: unknown content type or invalid document.
    """
    if content_type == MERGE_PATCH_TYPE:
        return MergePatch(payload)
    if content_type == JSON_PATCH_TYPE:
        return JsonPatch.from_json(payload)
    raise MalformedPatchError(f"No patch format for content type {content_type!r}")
