"""Revert documents to earlier versions and compare versions."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from docledger.config import Settings, get_settings
from docledger.domain.entities import (
    AUDIT_OPERATION_UPDATE,
    AUDIT_SOURCE_API,
    ORIGIN_REVERT,
    REVISION_FIELD,
    ActorContext,
    strip_system_fields,
)
from docledger.domain.errors import (
    DocLedgerError,
    DocumentNotFound,
    InvalidRequestError,
    LogPersistenceFailure,
    NoStateAtVersion,
    SchemaNotFound,
    VersionNotFound,
    VersionNotRevertable,
)
from docledger.infrastructure.collections import CollectionRegistry, DynamicCollection

from .diff import classify_differences
from .ledger import VersionLedger, ensure_version, idempotency_key_for
from .reconstruction import get_document_at_version

logger = logging.getLogger(__name__)


class RevertEngine:
    """Restore a document's business fields from a recorded version.

    The restore is applied as a regular document write first; the ledger
    entry describing it is written only once that write succeeded.
    """

    def __init__(
        self,
        ledger: VersionLedger,
        collections: CollectionRegistry,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._ledger = ledger
        self._collections = collections
        self._settings = settings or get_settings()

    def revert_to_version(
        self,
        document_id: str,
        schema_name: str,
        target_version: int,
        *,
        actor: ActorContext | None = None,
        reason: str | None = None,
        expected_revision: int | None = None,
    ) -> dict[str, Any]:
        """Make ``target_version``'s state the document's new current state.

        Fields missing from the target state are removed. Raises
        :class:`VersionNotFound`, :class:`VersionNotRevertable` or
        :class:`NoStateAtVersion` before touching the document, and
        :class:`DocumentNotFound` when the document is gone.
        """

        ensure_version(target_version)
        target = self._ledger.get_entry(document_id, schema_name, target_version)
        if target is None:
            raise VersionNotFound(document_id, target_version)
        if not target.can_revert:
            raise VersionNotRevertable(target_version)
        if target.current_state is None:
            raise NoStateAtVersion(target_version)

        collection = self._collection(schema_name)
        before = collection.find_by_id(document_id)
        if before is None:
            raise DocumentNotFound(schema_name, document_id)

        restored = collection.find_by_id_and_update(
            document_id,
            strip_system_fields(target.current_state),
            replace=True,
            expected_revision=expected_revision,
            origin=ORIGIN_REVERT,
        )
        if restored is None:
            raise DocumentNotFound(schema_name, document_id)

        metadata: dict[str, Any] = {
            "source": AUDIT_SOURCE_API,
            "is_revert": True,
            "reverted_to_version": target_version,
        }
        if reason:
            metadata["reason"] = reason

        audit_entry = None
        try:
            audit_entry = self._ledger.log_change(
                document_id=document_id,
                schema_name=schema_name,
                collection_name=collection.collection_name,
                operation=AUDIT_OPERATION_UPDATE,
                previous_state=before,
                current_state=restored,
                actor=actor,
                metadata=metadata,
                idempotency_key=idempotency_key_for(
                    AUDIT_OPERATION_UPDATE, restored[REVISION_FIELD]
                ),
            )
            audit_entry = self._ledger.set_reverted_from(audit_entry.id, target.id)
        except (LogPersistenceFailure, ValueError) as exc:
            logger.warning(
                "Reverted %s/%s to version %s but could not record it: %s",
                schema_name,
                document_id,
                target_version,
                exc,
            )

        logger.info(
            "Reverted %s/%s to version %s", schema_name, document_id, target_version
        )
        return {
            "document": restored,
            "audit_log": audit_entry,
            "reverted_from_version": target_version,
        }

    def bulk_revert(
        self,
        schema_name: str,
        items: Sequence[Mapping[str, Any]],
        *,
        actor: ActorContext | None = None,
        reason: str | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Revert several documents independently.

        Each item is ``{"record_id", "target_version"}``. All items run to
        completion; the result lists them as successful or failed in input
        order.
        """

        if not items:
            raise InvalidRequestError("At least one revert operation is required")
        self._collection(schema_name)

        def _revert_one(item: Mapping[str, Any]) -> dict[str, Any]:
            record_id = item.get("record_id")
            target_version = item.get("target_version")
            try:
                if not record_id:
                    raise InvalidRequestError("record_id is required")
                result = self.revert_to_version(
                    str(record_id),
                    schema_name,
                    target_version,
                    actor=actor,
                    reason=reason,
                )
            except DocLedgerError as exc:
                return {
                    "record_id": record_id,
                    "target_version": target_version,
                    "success": False,
                    "error": exc.message,
                    "code": exc.code,
                }
            audit_entry = result["audit_log"]
            return {
                "record_id": record_id,
                "target_version": target_version,
                "success": True,
                "new_version": audit_entry.version if audit_entry is not None else None,
            }

        workers = min(self._settings.bulk_max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(_revert_one, items))

        successful = [outcome for outcome in outcomes if outcome["success"]]
        failed = [outcome for outcome in outcomes if not outcome["success"]]
        logger.info(
            "Bulk revert on %s: %s succeeded, %s failed",
            schema_name,
            len(successful),
            len(failed),
        )
        return {"successful": successful, "failed": failed}

    def compare_versions(
        self,
        document_id: str,
        schema_name: str,
        from_version: int,
        to_version: int,
    ) -> dict[str, Any]:
        """Diff the states recorded at two versions of a document."""

        old = get_document_at_version(self._ledger, document_id, schema_name, from_version)
        new = get_document_at_version(self._ledger, document_id, schema_name, to_version)
        differences = classify_differences(old["state"], new["state"])
        return {
            "document_id": document_id,
            "from_version": _version_header(old),
            "to_version": _version_header(new),
            "differences": differences,
            "total_changes": len(differences),
        }

    def _collection(self, schema_name: str) -> DynamicCollection:
        collection = self._collections.get(schema_name)
        if collection is None:
            raise SchemaNotFound(schema_name)
        return collection


def _version_header(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "version": snapshot["version"],
        "timestamp": snapshot["timestamp"],
        "operation": snapshot["operation"],
    }


__all__ = ["RevertEngine"]
