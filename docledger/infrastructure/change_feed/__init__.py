"""Change notification helpers for the infrastructure layer."""

from .feed import ChangeFeed
from .subscription import ChangeSubscription

__all__ = ["ChangeFeed", "ChangeSubscription"]
