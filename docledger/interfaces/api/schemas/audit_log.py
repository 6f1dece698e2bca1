"""Schemas for audit ledger endpoints."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .common import PaginationRead


class ChangedFieldRead(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None

    model_config = ConfigDict(from_attributes=True)


class AuditLogRead(BaseModel):
    """Representation of a ledger entry returned by the API."""

    id: int
    document_id: str
    schema_name: str
    collection_name: str
    operation: str
    previous_state: dict[str, Any] | None
    current_state: dict[str, Any] | None
    changed_fields: list[ChangedFieldRead]
    version: int
    user_id: str | None
    user_agent: str | None
    ip_address: str | None
    timestamp: datetime | None
    can_revert: bool
    reverted_from: int | None
    metadata: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class AuditHistoryRead(BaseModel):
    audit_logs: list[AuditLogRead]
    pagination: PaginationRead


class DocumentVersionRead(BaseModel):
    version: int
    operation: str
    timestamp: datetime | None
    user_id: str | None
    changed_fields: list[ChangedFieldRead]
    can_revert: bool
    metadata: dict[str, Any]


class DocumentVersionsRead(BaseModel):
    document_id: str
    schema_name: str
    versions: list[DocumentVersionRead]
    pagination: PaginationRead


class DocumentAtVersionRead(BaseModel):
    version: int
    timestamp: datetime | None
    operation: str
    state: dict[str, Any] | None
    changed_fields: list[ChangedFieldRead]
    metadata: dict[str, Any]


class VersionHeaderRead(BaseModel):
    version: int
    timestamp: datetime | None
    operation: str


class VersionDifferenceRead(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None
    change_type: Literal["added", "removed", "modified"]


class VersionComparisonRead(BaseModel):
    document_id: str
    from_version: VersionHeaderRead
    to_version: VersionHeaderRead
    differences: list[VersionDifferenceRead]
    total_changes: int


class RevertRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
    expected_revision: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


class RevertRead(BaseModel):
    document: dict[str, Any]
    audit_log: AuditLogRead | None
    reverted_from_version: int


class BulkRevertItem(BaseModel):
    record_id: str = Field(..., min_length=1)
    target_version: int = Field(..., ge=1)


class BulkRevertRequest(BaseModel):
    operations: list[BulkRevertItem] = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=500)


class BulkRevertOutcome(BaseModel):
    record_id: str | None
    target_version: int | None
    success: bool
    new_version: int | None = None
    error: str | None = None
    code: str | None = None


class BulkRevertRead(BaseModel):
    successful: list[BulkRevertOutcome]
    failed: list[BulkRevertOutcome]
    total_processed: int


class OperationCounts(BaseModel):
    create: int = 0
    update: int = 0
    delete: int = 0


class AuditStatsRead(BaseModel):
    schema_name: str
    timeframe: str
    total_audit_logs: int
    unique_documents: int
    operations: OperationCounts


class AuditSummaryTotals(BaseModel):
    total_operations: int
    unique_documents: int
    most_frequent_operation: str | None
    timeframe: str


class AuditSummaryRead(BaseModel):
    stats: AuditStatsRead
    recent_activity: list[AuditLogRead]
    summary: AuditSummaryTotals


class CleanupRequest(BaseModel):
    older_than_days: int | None = Field(default=None, ge=0)
    schema_name: str | None = None
    operation: Literal["create", "update", "delete"] | None = None
    dry_run: bool = False


class CleanupRead(BaseModel):
    dry_run: bool
    cutoff: datetime
    deleted: int | None = None
    would_delete: int | None = None


__all__ = [
    "AuditHistoryRead",
    "AuditLogRead",
    "AuditStatsRead",
    "AuditSummaryRead",
    "BulkRevertRead",
    "BulkRevertRequest",
    "ChangedFieldRead",
    "CleanupRead",
    "CleanupRequest",
    "DocumentAtVersionRead",
    "DocumentVersionsRead",
    "RevertRead",
    "RevertRequest",
    "VersionComparisonRead",
]
