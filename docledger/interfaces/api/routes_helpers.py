"""Helper utilities shared across API route handlers."""

from fastapi import HTTPException, status

from docledger.domain.errors import (
    DocLedgerError,
    InvalidRequestError,
    NoStateAtVersion,
    NotFoundError,
    OperationTimeout,
    RecordValidationError,
    RevisionConflict,
    SchemaAlreadyExists,
    VersionNotRevertable,
)

_STATUS_BY_ERROR: tuple[tuple[type[DocLedgerError], int], ...] = (
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (VersionNotRevertable, status.HTTP_409_CONFLICT),
    (NoStateAtVersion, status.HTTP_409_CONFLICT),
    (RevisionConflict, status.HTTP_409_CONFLICT),
    (SchemaAlreadyExists, status.HTTP_409_CONFLICT),
    (OperationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
)


def status_code_for(error: DocLedgerError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(error: DocLedgerError) -> HTTPException:
    """Translate a ledger error into the API's ``{"message", "code"}`` detail."""

    detail: dict[str, object] = {"message": error.message, "code": error.code}
    if isinstance(error, RecordValidationError) and error.errors:
        detail["errors"] = list(error.errors)
    return HTTPException(status_code=status_code_for(error), detail=detail)


__all__ = ["status_code_for", "to_http_exception"]
