"""Utility script to delete old ledger entries from the database."""

from __future__ import annotations

import argparse

from sqlalchemy.exc import SQLAlchemyError

from docledger.application.use_cases.audit import VersionLedger
from docledger.config import get_settings
from docledger.domain.entities import AUDIT_OPERATIONS
from docledger.domain.errors import DocLedgerError
from docledger.infrastructure.database import (
    build_engine,
    build_session_factory,
    initialize_database,
)


def parse_args() -> argparse.Namespace:
    """Parse command line arguments for the cleanup run."""

    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Delete audit entries older than a number of days.",
    )
    parser.add_argument(
        "--older-than-days",
        type=int,
        default=settings.default_cleanup_days,
        help=f"Age in days of the entries to delete (default: {settings.default_cleanup_days})",
    )
    parser.add_argument(
        "--schema",
        default=None,
        help="Only delete entries of this schema",
    )
    parser.add_argument(
        "--operation",
        choices=AUDIT_OPERATIONS,
        default=None,
        help="Only delete entries of this operation",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count the matching entries without deleting them.",
    )
    return parser.parse_args()


def main() -> None:
    """Run the cleanup using the provided command line arguments."""

    args = parse_args()
    settings = get_settings()

    engine = build_engine(settings.database_url)
    try:
        initialize_database(engine)
        ledger = VersionLedger(build_session_factory(engine), settings=settings)
        result = ledger.cleanup_old_audit_logs(
            older_than_days=args.older_than_days,
            schema_name=args.schema,
            operation=args.operation,
            dry_run=args.dry_run,
        )
    except DocLedgerError as exc:
        raise SystemExit(f"Cleanup rejected: {exc.message}") from exc
    except SQLAlchemyError as exc:
        raise SystemExit(f"Database error during cleanup: {exc}") from exc
    finally:
        engine.dispose()

    cutoff = result["cutoff"].isoformat()
    if result["dry_run"]:
        print(f"{result['would_delete']} entries older than {cutoff} would be deleted")
    else:
        print(f"Deleted {result['deleted']} entries older than {cutoff}")


if __name__ == "__main__":
    main()
