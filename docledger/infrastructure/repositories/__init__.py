"""Repository implementations for infrastructure layer."""

from .audit_log_repository import AuditLogRepository
from .schema_repository import SchemaRepository

__all__ = [
    "AuditLogRepository",
    "SchemaRepository",
]
