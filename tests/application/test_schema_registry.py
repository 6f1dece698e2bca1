"""Tests for runtime schema management."""

from __future__ import annotations

import pytest

from docledger.domain.errors import SchemaAlreadyExists, SchemaDefinitionError, SchemaNotFound

CATEGORY_SCHEMA = {"type": "object", "properties": {"name": {"type": "string"}}}
PRODUCT_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "category": {"type": "string", "x-ref": "Category"},
        "related": {"type": "array", "items": {"type": "string", "x-ref": "Category"}},
    },
}


def test_create_schema_registers_collection_and_relationships(container) -> None:
    schema = container.schemas.create_schema(
        name="Product", json_schema=PRODUCT_SCHEMA, description="Things we sell"
    )

    assert schema.collection_name == "dynamic_Product"
    assert schema.display_name == "Product"
    assert [(item.field, item.referenced_schema, item.reference_type) for item in schema.relationships] == [
        ("category", "Category", "single"),
        ("related", "Category", "array"),
    ]
    assert "Product" in container.collections


def test_schema_names_are_unique(container) -> None:
    container.schemas.create_schema(name="Category", json_schema=CATEGORY_SCHEMA)

    with pytest.raises(SchemaAlreadyExists):
        container.schemas.create_schema(name="Category", json_schema=CATEGORY_SCHEMA)


@pytest.mark.parametrize("name", ["", "1abc", "has space", "a" * 70])
def test_invalid_schema_names_are_rejected(container, name) -> None:
    with pytest.raises(SchemaDefinitionError):
        container.schemas.create_schema(name=name, json_schema=CATEGORY_SCHEMA)


@pytest.mark.parametrize(
    "json_schema",
    [
        {"type": "array"},
        {"type": "object", "properties": []},
        {"type": "object", "properties": {"name": {"type": "not-a-type"}}},
    ],
)
def test_invalid_json_schemas_are_rejected(container, json_schema) -> None:
    with pytest.raises(SchemaDefinitionError):
        container.schemas.create_schema(name="Broken", json_schema=json_schema)


def test_delete_schema_deactivates_it(catalog) -> None:
    catalog.schemas.delete_schema("Product")

    assert catalog.schemas.get_schema("Product") is None
    assert "Product" not in catalog.collections
    assert [schema.name for schema in catalog.schemas.list_schemas(active=False)] == ["Product"]
    with pytest.raises(SchemaNotFound):
        catalog.schemas.delete_schema("Ghost")


def test_update_schema_rederives_relationships(catalog) -> None:
    updated = catalog.schemas.update_schema(
        "Product",
        display_name="Products",
        json_schema={"type": "object", "properties": {"title": {"type": "string"}}},
    )

    assert updated.display_name == "Products"
    assert updated.relationships == []
    assert "Product" in catalog.collections


def test_initialize_collections_reloads_active_schemas(catalog) -> None:
    catalog.collections.clear()

    assert catalog.schemas.initialize_collections() == 2
    assert catalog.collections.names() == ["Category", "Product"]
    assert catalog.schemas.hot_reload("Category") is True
    assert catalog.schemas.hot_reload("Ghost") is False
