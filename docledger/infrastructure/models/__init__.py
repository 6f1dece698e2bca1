"""ORM models used by the application infrastructure."""

from .audit_log import AuditLogModel
from .schema_definition import SchemaDefinitionModel

__all__ = [
    "AuditLogModel",
    "SchemaDefinitionModel",
]
