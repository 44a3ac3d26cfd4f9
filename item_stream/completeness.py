"""
Completeness detection for array elements in a partial snapshot.
"""

from __future__ import annotations

from typing import Any

from item_stream.types import ArrayPath, CompletenessRule
from item_stream.utils.json_parse import is_partial, to_plain

# Trailing markers a model writes while a sentence is still in progress
TRUNCATION_MARKERS: tuple[str, ...] = ("...", "…")


def get_field(item: Any, field: str) -> Any:
    """Read a possibly dotted field (e.g. ``context.property_id``) from an item."""
    current = item
    for key in field.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _set_field(target: dict[str, Any], field: str, value: Any) -> None:
    *parents, last = field.split(".")
    for key in parents:
        child = target.get(key)
        if not isinstance(child, dict):
            child = target[key] = {}
        target = child
    target[last] = value


def _field_is_done(value: Any, min_length: int) -> bool:
    if value is None or is_partial(value):
        return False
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or len(stripped) < min_length:
            return False
        return not stripped.endswith(TRUNCATION_MARKERS)
    if isinstance(value, (dict, list)):
        return len(value) > 0
    return True


def is_item_complete(item: Any, rule: CompletenessRule) -> bool:
    """
    Check whether an element is ready to deliver.

    Every checked field (identity, required, and any field with a minimum
    length) must be present, non-empty after trimming, at least its minimum
    length, fully received, and must not end with a truncation marker.
    """
    if not isinstance(item, dict):
        return False
    for field in rule.checked_fields:
        if not _field_is_done(get_field(item, field), rule.min_lengths.get(field, 1)):
            return False
    return True


def clean_item(item: dict[str, Any], rule: CompletenessRule) -> dict[str, Any]:
    """
    Copy the fields a rule cares about into a plain payload.

    String values of checked fields are trimmed. Optional fields are copied
    when present and fully received; anything else in the item is dropped.
    """
    payload: dict[str, Any] = {}
    for field in rule.checked_fields:
        value = to_plain(get_field(item, field))
        _set_field(payload, field, value.strip() if isinstance(value, str) else value)

    for field in rule.optional_fields:
        value = get_field(item, field)
        if value is None or is_partial(value):
            continue
        value = to_plain(value)
        _set_field(payload, field, value.strip() if isinstance(value, str) else value)
    return payload


def find_complete_items(
    snapshot: Any,
    path: ArrayPath,
    rule: CompletenessRule,
    watermark: int,
) -> list[tuple[int, dict[str, Any]]]:
    """
    Find newly complete elements of the target array.

    Scans from ``watermark`` and stops at the first incomplete element, so
    the result is always a contiguous run of indices starting at the
    watermark. A single object at the path is treated as a one-element array.
    """
    items = path.resolve(snapshot)
    if isinstance(items, dict):
        items = [items]
    elif not isinstance(items, list):
        return []

    found: list[tuple[int, dict[str, Any]]] = []
    for index in range(max(0, watermark), len(items)):
        item = items[index]
        if not is_item_complete(item, rule):
            break
        found.append((index, item))
    return found
