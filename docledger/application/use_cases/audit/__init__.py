"""Use cases built on the document version ledger."""

from .diff import classify_differences, compute_changed_fields
from .ledger import TIMEFRAMES, VersionLedger, ensure_version, idempotency_key_for
from .reconstruction import get_document_at_version
from .revert import RevertEngine

__all__ = [
    "TIMEFRAMES",
    "RevertEngine",
    "VersionLedger",
    "classify_differences",
    "compute_changed_fields",
    "ensure_version",
    "get_document_at_version",
    "idempotency_key_for",
]
