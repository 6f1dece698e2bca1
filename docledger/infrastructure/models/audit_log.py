"""SQLAlchemy model for the document ledger."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from docledger.infrastructure.database import Base, json_type
from docledger.utils import ensure_app_naive_datetime, now_in_app_timezone


def _now_naive():
    return ensure_app_naive_datetime(now_in_app_timezone())


class AuditLogModel(Base):
    """Database representation of ledger entries."""

    __tablename__ = "audit_log"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "schema_name", "version", name="uq_audit_log_document_version"
        ),
        Index(
            "ix_audit_log_document_idempotency",
            "document_id",
            "schema_name",
            "idempotency_key",
        ),
        Index("ix_audit_log_document_timestamp", "document_id", "timestamp"),
        Index("ix_audit_log_schema_timestamp", "schema_name", "timestamp"),
        Index("ix_audit_log_operation_timestamp", "operation", "timestamp"),
        Index("ix_audit_log_user_timestamp", "user_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(String(64), nullable=False, index=True)
    schema_name = Column(String(63), nullable=False, index=True)
    collection_name = Column(String(80), nullable=False)
    operation = Column(String(10), nullable=False)
    previous_state = Column(json_type, nullable=True)
    current_state = Column(json_type, nullable=True)
    changed_fields = Column(json_type, nullable=False, default=list)
    version = Column(Integer, nullable=False)
    user_id = Column(String(255), nullable=True)
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=_now_naive, index=True)
    can_revert = Column(Boolean, nullable=False, default=True)
    # Plain id, not a foreign key: retention may delete the referenced entry.
    reverted_from = Column(Integer, nullable=True, index=True)
    # ``metadata`` is reserved on declarative classes.
    entry_metadata = Column("metadata", json_type, nullable=False, default=dict)
    idempotency_key = Column(String(120), nullable=True)


__all__ = ["AuditLogModel"]
