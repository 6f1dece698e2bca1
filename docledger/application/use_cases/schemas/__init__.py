"""Schema definition use cases."""

from .registry import SchemaRegistry

__all__ = ["SchemaRegistry"]
