"""
Emission tracking: exactly-once, in-order delivery of complete elements.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from item_stream.completeness import clean_item, get_field
from item_stream.types import ArrayPath, CompletenessRule, DeliveryRecord


class EmissionTracker:
    """
    Remembers what one exchange has already delivered.

    The watermark is the index of the next element to deliver. It only moves
    forward, one contiguous element at a time, so a later element never
    overtakes an earlier one that is still being written.
    """

    def __init__(self, type_name: str, path: ArrayPath, rule: CompletenessRule) -> None:
        self.type_name = type_name
        self.path = path
        self.rule = rule
        self._watermark = 0
        self._seen: set[str] = set()

    @property
    def watermark(self) -> int:
        return self._watermark

    @property
    def seen_keys(self) -> frozenset[str]:
        return frozenset(self._seen)

    def key_for(self, index: int, item: dict[str, Any]) -> str:
        return f"{self.type_name}-{index}-{get_field(item, self.rule.identity_field)}"

    def track(self, candidates: Iterable[tuple[int, dict[str, Any]]]) -> list[DeliveryRecord]:
        """Turn detector output into delivery records, skipping anything already sent."""
        records: list[DeliveryRecord] = []
        for index, item in sorted(candidates, key=lambda candidate: candidate[0]):
            if index < self._watermark:
                continue
            if index > self._watermark:
                # Gap: an earlier element is not finished yet
                break

            key = self.key_for(index, item)
            if key in self._seen:
                continue

            records.append(
                DeliveryRecord(
                    type_name=self.type_name,
                    array_path=str(self.path),
                    index=index,
                    payload=clean_item(item, self.rule),
                )
            )
            self._seen.add(key)
            self._watermark = max(self._watermark, index + 1)
        return records

    def reset(self) -> None:
        self._watermark = 0
        self._seen.clear()
