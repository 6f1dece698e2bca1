"""Record use cases for dynamic schemas."""

from .crud import DEFAULT_RECORDS_LIMIT, DynamicCrudService
from .propagation import (
    DependencyPropagator,
    DependentRecord,
    PropagationResult,
    last_updated_field,
    version_field,
)

__all__ = [
    "DEFAULT_RECORDS_LIMIT",
    "DependencyPropagator",
    "DependentRecord",
    "DynamicCrudService",
    "PropagationResult",
    "last_updated_field",
    "version_field",
]
