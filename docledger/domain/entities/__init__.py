"""Domain entities exposed by the application."""

from .actor import SYSTEM_ACTOR, ActorContext
from .audit_log import (
    AUDIT_OPERATION_CREATE,
    AUDIT_OPERATION_DELETE,
    AUDIT_OPERATION_UPDATE,
    AUDIT_OPERATIONS,
    AUDIT_SOURCE_API,
    AUDIT_SOURCE_BULK,
    AUDIT_SOURCE_CHANGE_STREAM,
    AuditLogEntry,
    ChangedField,
)
from .change_event import (
    CHANGE_DELETE,
    CHANGE_INSERT,
    CHANGE_UPDATE,
    ORIGIN_API,
    ORIGIN_BULK,
    ORIGIN_PROPAGATION,
    ORIGIN_REVERT,
    ChangeEvent,
)
from .document import (
    CREATED_AT_FIELD,
    DOCUMENT_ID_FIELD,
    REVISION_FIELD,
    SCHEMA_NAME_FIELD,
    SYSTEM_FIELDS,
    UPDATED_AT_FIELD,
    strip_system_fields,
)
from .pagination import Page, Pagination
from .schema_definition import (
    COLLECTION_PREFIX,
    REFERENCE_TYPE_ARRAY,
    REFERENCE_TYPE_SINGLE,
    REFERENCE_TYPES,
    Relationship,
    SchemaDefinition,
    collection_name_for,
    parse_relationships,
)

__all__ = [
    "ActorContext",
    "SYSTEM_ACTOR",
    "AuditLogEntry",
    "ChangedField",
    "AUDIT_OPERATIONS",
    "AUDIT_OPERATION_CREATE",
    "AUDIT_OPERATION_UPDATE",
    "AUDIT_OPERATION_DELETE",
    "AUDIT_SOURCE_API",
    "AUDIT_SOURCE_BULK",
    "AUDIT_SOURCE_CHANGE_STREAM",
    "ChangeEvent",
    "CHANGE_INSERT",
    "CHANGE_UPDATE",
    "CHANGE_DELETE",
    "ORIGIN_API",
    "ORIGIN_REVERT",
    "ORIGIN_BULK",
    "ORIGIN_PROPAGATION",
    "DOCUMENT_ID_FIELD",
    "SCHEMA_NAME_FIELD",
    "REVISION_FIELD",
    "CREATED_AT_FIELD",
    "UPDATED_AT_FIELD",
    "SYSTEM_FIELDS",
    "strip_system_fields",
    "Page",
    "Pagination",
    "SchemaDefinition",
    "Relationship",
    "REFERENCE_TYPE_SINGLE",
    "REFERENCE_TYPE_ARRAY",
    "REFERENCE_TYPES",
    "COLLECTION_PREFIX",
    "collection_name_for",
    "parse_relationships",
]
