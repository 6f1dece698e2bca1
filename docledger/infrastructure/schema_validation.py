"""JSON Schema checks for schema definitions and record payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from docledger.domain.errors import RecordValidationError, SchemaDefinitionError


def check_json_schema(json_schema: Mapping[str, Any]) -> None:
    """Raise :class:`SchemaDefinitionError` when ``json_schema`` is not usable."""

    if not isinstance(json_schema, Mapping):
        raise SchemaDefinitionError("JSON schema must be an object")
    if json_schema.get("type", "object") != "object":
        raise SchemaDefinitionError("JSON schema must describe an object")
    properties = json_schema.get("properties")
    if properties is not None and not isinstance(properties, Mapping):
        raise SchemaDefinitionError("'properties' must be an object")
    try:
        Draft7Validator.check_schema(dict(json_schema))
    except SchemaError as exc:
        raise SchemaDefinitionError(f"Invalid JSON schema: {exc.message}") from exc


def validate_record(
    json_schema: Mapping[str, Any],
    data: Mapping[str, Any],
    *,
    partial: bool = False,
) -> None:
    """Validate ``data`` against ``json_schema``.

    With ``partial`` the ``required`` keyword is ignored so updates may send
    only the fields that change.
    """

    schema = dict(json_schema)
    if partial:
        schema.pop("required", None)
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(dict(data)), key=lambda error: list(error.path))
    if not errors:
        return
    messages = [_format_error(error) for error in errors]
    raise RecordValidationError("Validation failed", errors=messages)


def _format_error(error) -> str:
    location = ".".join(str(part) for part in error.path)
    return f"{location}: {error.message}" if location else error.message


__all__ = ["check_json_schema", "validate_record"]
