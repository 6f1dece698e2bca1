"""Aggregate application use cases."""

from .audit import RevertEngine, VersionLedger, get_document_at_version
from .schemas import SchemaRegistry
from .records import DependencyPropagator, DynamicCrudService

__all__ = [
    "DependencyPropagator",
    "DynamicCrudService",
    "RevertEngine",
    "SchemaRegistry",
    "VersionLedger",
    "get_document_at_version",
]
