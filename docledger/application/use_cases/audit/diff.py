"""Field-level differences between two document snapshots."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from docledger.domain.entities import SYSTEM_FIELDS, ChangedField

CHANGE_ADDED = "added"
CHANGE_REMOVED = "removed"
CHANGE_MODIFIED = "modified"

_MISSING = object()


def canonical_json(value: Any) -> str:
    """Serialize ``value`` so structurally equal values produce equal strings."""

    return json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))


def values_differ(old_value: Any, new_value: Any) -> bool:
    return canonical_json(old_value) != canonical_json(new_value)


def compute_changed_fields(
    previous_state: Mapping[str, Any] | None,
    current_state: Mapping[str, Any] | None,
) -> list[ChangedField]:
    """Return the business fields that differ between the two snapshots.

    Keys are the union of both states minus system fields. A key missing on
    one side is reported with ``None`` on that side. Order follows the
    previous state's keys, then keys only present in the current state.
    """

    previous_state = previous_state or {}
    current_state = current_state or {}
    changes: list[ChangedField] = []
    for key in _ordered_union(previous_state, current_state):
        old_value = previous_state.get(key, _MISSING)
        new_value = current_state.get(key, _MISSING)
        if old_value is not _MISSING and new_value is not _MISSING:
            if not values_differ(old_value, new_value):
                continue
        changes.append(
            ChangedField(
                field=key,
                old_value=None if old_value is _MISSING else old_value,
                new_value=None if new_value is _MISSING else new_value,
            )
        )
    return changes


def classify_differences(
    from_state: Mapping[str, Any] | None,
    to_state: Mapping[str, Any] | None,
) -> list[dict[str, Any]]:
    """Return differences tagged as ``added``, ``removed`` or ``modified``."""

    from_state = from_state or {}
    to_state = to_state or {}
    differences: list[dict[str, Any]] = []
    for key in _ordered_union(from_state, to_state):
        in_old = key in from_state
        in_new = key in to_state
        if in_old and in_new:
            if not values_differ(from_state[key], to_state[key]):
                continue
            change_type = CHANGE_MODIFIED
        elif in_new:
            change_type = CHANGE_ADDED
        else:
            change_type = CHANGE_REMOVED
        differences.append(
            {
                "field": key,
                "old_value": from_state.get(key),
                "new_value": to_state.get(key),
                "change_type": change_type,
            }
        )
    return differences


def _ordered_union(first: Mapping[str, Any], second: Mapping[str, Any]) -> list[str]:
    keys = [key for key in first if key not in SYSTEM_FIELDS]
    seen = set(keys)
    keys.extend(key for key in second if key not in SYSTEM_FIELDS and key not in seen)
    return keys


__all__ = [
    "CHANGE_ADDED",
    "CHANGE_MODIFIED",
    "CHANGE_REMOVED",
    "canonical_json",
    "classify_differences",
    "compute_changed_fields",
    "values_differ",
]
