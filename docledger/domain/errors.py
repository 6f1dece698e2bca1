"""Error taxonomy shared by the ledger, revert and propagation layers.

Every error carries a machine-checkable ``code`` so API callers can tell
validation failures apart from missing resources or revert preconditions.
"""

from __future__ import annotations

from collections.abc import Sequence


class DocLedgerError(Exception):
    """Base class for errors raised by the document ledger."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(DocLedgerError, ValueError):
    """Raised when a caller supplies malformed input."""

    code = "invalid_request"


class InvalidVersionError(InvalidRequestError):
    """Raised when a version number is not a positive integer."""

    code = "invalid_version"


class InvalidPaginationError(InvalidRequestError):
    """Raised when page or limit values fall outside the accepted bounds."""

    code = "invalid_pagination"


class SchemaDefinitionError(InvalidRequestError):
    """Raised when a schema definition cannot be accepted."""

    code = "invalid_schema"


class RecordValidationError(InvalidRequestError):
    """Raised when record data does not satisfy its JSON Schema."""

    code = "validation_failed"

    def __init__(self, message: str, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)


class NotFoundError(DocLedgerError, LookupError):
    """Raised when a requested resource does not exist."""

    code = "not_found"


class SchemaNotFound(NotFoundError):
    code = "schema_not_found"

    def __init__(self, schema_name: str) -> None:
        super().__init__(f"Schema '{schema_name}' not found")
        self.schema_name = schema_name


class DocumentNotFound(NotFoundError):
    code = "document_not_found"

    def __init__(self, schema_name: str, document_id: str) -> None:
        super().__init__(f"Record with ID '{document_id}' not found in '{schema_name}'")
        self.schema_name = schema_name
        self.document_id = document_id


class VersionNotFound(NotFoundError):
    code = "version_not_found"

    def __init__(self, document_id: str, version: int) -> None:
        super().__init__(f"Version {version} not found for document {document_id}")
        self.document_id = document_id
        self.version = version


class SchemaAlreadyExists(DocLedgerError):
    """Raised when a schema name is already taken."""

    code = "schema_exists"

    def __init__(self, schema_name: str) -> None:
        super().__init__(f"Schema with name '{schema_name}' already exists")
        self.schema_name = schema_name


class VersionNotRevertable(DocLedgerError):
    """Raised when the target entry is flagged with ``can_revert = False``."""

    code = "version_not_revertable"

    def __init__(self, version: int) -> None:
        super().__init__(f"Version {version} cannot be reverted")
        self.version = version


class NoStateAtVersion(DocLedgerError):
    """Raised when the target entry has no recorded state (a delete entry)."""

    code = "no_state_at_version"

    def __init__(self, version: int) -> None:
        super().__init__(f"No state available for version {version}")
        self.version = version


class RevisionConflict(DocLedgerError):
    """Raised when a conditional document write loses against another writer."""

    code = "revision_conflict"


class LogPersistenceFailure(DocLedgerError, RuntimeError):
    """Raised when an audit entry cannot be written to storage."""

    code = "log_persistence_failure"


class OperationTimeout(DocLedgerError, TimeoutError):
    """Raised when a bounded operation exceeds its deadline."""

    code = "operation_timeout"


class ChangeFeedError(DocLedgerError):
    """Raised by a change subscription that can no longer deliver events."""

    code = "change_feed_error"


__all__ = [
    "DocLedgerError",
    "InvalidRequestError",
    "InvalidVersionError",
    "InvalidPaginationError",
    "SchemaDefinitionError",
    "RecordValidationError",
    "NotFoundError",
    "SchemaNotFound",
    "DocumentNotFound",
    "VersionNotFound",
    "SchemaAlreadyExists",
    "VersionNotRevertable",
    "NoStateAtVersion",
    "RevisionConflict",
    "LogPersistenceFailure",
    "OperationTimeout",
    "ChangeFeedError",
]
