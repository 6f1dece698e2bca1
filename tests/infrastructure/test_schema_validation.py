"""Tests for JSON Schema checks of definitions and records."""

import pytest

from docledger.domain.errors import RecordValidationError, SchemaDefinitionError
from docledger.infrastructure.schema_validation import check_json_schema, validate_record

SCHEMA = {
    "type": "object",
    "properties": {"name": {"type": "string"}, "age": {"type": "integer", "minimum": 0}},
    "required": ["name"],
}


def test_valid_record_passes() -> None:
    validate_record(SCHEMA, {"name": "Ada", "age": 36})


def test_errors_name_the_offending_field() -> None:
    with pytest.raises(RecordValidationError) as excinfo:
        validate_record(SCHEMA, {"name": "Ada", "age": -1})

    assert excinfo.value.errors == ["age: -1 is less than the minimum of 0"]


def test_partial_validation_skips_required() -> None:
    validate_record(SCHEMA, {"age": 3}, partial=True)

    with pytest.raises(RecordValidationError):
        validate_record(SCHEMA, {"age": 3})


def test_reference_annotations_are_accepted() -> None:
    check_json_schema(
        {"type": "object", "properties": {"owner": {"type": "string", "x-ref": "User"}}}
    )


@pytest.mark.parametrize("json_schema", [[], {"type": "string"}, {"properties": "name"}])
def test_unusable_schemas_are_rejected(json_schema) -> None:
    with pytest.raises(SchemaDefinitionError):
        check_json_schema(json_schema)
