"""
Field validation as a pure function.

There is no shared "model state" that binding fills in and handlers
inspect later. A handler that needs domain validation calls:

    errors = validate(candidate, UserModel)
    if errors:
        return ValidationFailed(errors)

and gets back a plain list of FieldError values.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError


@dataclass(frozen=True)
class FieldError:
    """One message about one field ("name", "address.zip", "items.0")."""

    field: str
    message: str


def validate(data: Any, schema: Any) -> List[FieldError]:
    """
    Validate `data` against a pydantic model or any type TypeAdapter accepts.

    Returns:
        Field errors, empty when `data` is valid.
    """
    try:
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            schema.model_validate(data)
        else:
            TypeAdapter(schema).validate_python(data)
    except ValidationError as exc:
        return field_errors_from(exc)
    return []


def field_errors_from(exc: ValidationError, prefix: str = "") -> List[FieldError]:
    """
    Flatten a pydantic ValidationError into FieldErrors.

    Locations are joined with dots; a root-level error uses `prefix`
    (or "$" when there is none).
    """
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        if prefix and loc:
            name = f"{prefix}.{loc}"
        else:
            name = prefix or loc or "$"
        errors.append(FieldError(field=name, message=err["msg"]))
    return errors


def errors_by_field(errors: Sequence[FieldError]) -> Dict[str, List[str]]:
    """Group messages per field, keeping first-seen order."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        grouped.setdefault(error.field, []).append(error.message)
    return grouped
