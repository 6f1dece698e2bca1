from .audit_log import (
    AuditHistoryRead,
    AuditLogRead,
    AuditStatsRead,
    AuditSummaryRead,
    BulkRevertRead,
    BulkRevertRequest,
    ChangedFieldRead,
    CleanupRead,
    CleanupRequest,
    DocumentAtVersionRead,
    DocumentVersionsRead,
    RevertRead,
    RevertRequest,
    VersionComparisonRead,
)
from .common import ErrorDetail, PaginationRead
from .record import RecordBatchRead, RecordBatchRequest, RecordCountRead, RecordListRead
from .schema_definition import RelationshipRead, SchemaCreate, SchemaRead, SchemaUpdate
from .system import ChangeStreamStatusRead, HealthRead, StreamStatusRead

__all__ = [
    "AuditHistoryRead",
    "AuditLogRead",
    "AuditStatsRead",
    "AuditSummaryRead",
    "BulkRevertRead",
    "BulkRevertRequest",
    "ChangedFieldRead",
    "ChangeStreamStatusRead",
    "CleanupRead",
    "CleanupRequest",
    "DocumentAtVersionRead",
    "DocumentVersionsRead",
    "ErrorDetail",
    "HealthRead",
    "PaginationRead",
    "RecordBatchRead",
    "RecordBatchRequest",
    "RecordCountRead",
    "RecordListRead",
    "RelationshipRead",
    "RevertRead",
    "RevertRequest",
    "SchemaCreate",
    "SchemaRead",
    "SchemaUpdate",
    "StreamStatusRead",
    "VersionComparisonRead",
]
