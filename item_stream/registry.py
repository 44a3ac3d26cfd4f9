"""
Completeness rule registry.

The registry is built once (usually at process start) and never mutated
afterwards; producers receive it explicitly instead of reaching for
module-level state.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from item_stream.config import ConnectionConfig
from item_stream.errors import UnknownItemTypeError
from item_stream.types import CompletenessRule


class CompletenessRegistry:
    """Read-only lookup of completeness rules keyed by item type."""

    def __init__(self, rules: Mapping[str, CompletenessRule]) -> None:
        self._rules: Mapping[str, CompletenessRule] = MappingProxyType(dict(rules))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> CompletenessRegistry:
        """Build a registry from plain data (snake_case or camelCase keys)."""
        return cls({name: CompletenessRule.model_validate(dict(raw)) for name, raw in data.items()})

    @classmethod
    def from_json_file(cls, path: str | Path) -> CompletenessRegistry:
        with open(path, encoding="utf-8") as f:
            return cls.from_mapping(json.load(f))

    def get(self, item_type: str) -> CompletenessRule:
        """Get the rule for an item type. Raises UnknownItemTypeError if absent."""
        rule = self._rules.get(item_type)
        if rule is None:
            raise UnknownItemTypeError(item_type)
        return rule

    def find(self, item_type: str) -> CompletenessRule | None:
        return self._rules.get(item_type)

    def names(self) -> list[str]:
        return list(self._rules)

    def connection_config(self, item_type: str, **overrides: int) -> ConnectionConfig:
        """Connection policy sized for the item type's timeout profile."""
        return ConnectionConfig.for_profile(self.get(item_type).timeout_profile, **overrides)

    def __contains__(self, item_type: object) -> bool:
        return item_type in self._rules

    def __iter__(self) -> Iterator[str]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


DEFAULT_RULES: dict[str, dict[str, Any]] = {
    "potential_causes": {
        "identity_field": "cause_id",
        "required_fields": ("name_localized", "suggestion_localized", "explanation_localized"),
        "min_lengths": {"name_localized": 10, "suggestion_localized": 20, "explanation_localized": 30},
        "optional_fields": ("confidence", "tags"),
        "display_name": "Potential Cause",
    },
    "potential_symptoms": {
        "identity_field": "symptom_id",
        "required_fields": ("name_localized", "suggestion_localized", "explanation_localized"),
        "min_lengths": {"name_localized": 5, "suggestion_localized": 10, "explanation_localized": 15},
        "display_name": "Potential Symptom",
    },
    "therapeutic_properties": {
        "identity_field": "property_id",
        "required_fields": ("property_name_localized", "description_contextual_localized"),
        "min_lengths": {"property_name_localized": 5, "description_contextual_localized": 15},
        "optional_fields": (
            "property_name_english",
            "relevancy_score",
            "addresses_cause_ids",
            "addresses_symptom_ids",
        ),
        "display_name": "Therapeutic Property",
        "timeout_profile": "standard",
    },
    "essential_oils": {
        "identity_field": "oil_id",
        "required_fields": ("name_localized", "description_localized"),
        "min_lengths": {"name_localized": 3, "description_localized": 10},
        "optional_fields": ("relevancy", "properties"),
        "display_name": "Essential Oil",
        "timeout_profile": "standard",
    },
    "suggested_oils": {
        "identity_field": "oil_id",
        "required_fields": ("name_english", "name_botanical", "name_localized", "match_rationale_localized"),
        "min_lengths": {
            "name_english": 3,
            "name_botanical": 5,
            "name_localized": 3,
            "match_rationale_localized": 10,
        },
        "optional_fields": ("relevancy_to_property_score",),
        "display_name": "Suggested Oil",
        "array_path": "data.property_oil_suggestion.suggested_oils",
        "timeout_profile": "extended",
    },
    "medical_properties": {
        "identity_field": "property_id",
        "required_fields": ("property_name", "description"),
        "min_lengths": {"property_name": 5, "description": 15},
        "optional_fields": ("causes_addressed", "symptoms_addressed", "relevancy"),
        "display_name": "Medical Property",
        "timeout_profile": "standard",
    },
}


def default_registry() -> CompletenessRegistry:
    """Registry holding the built-in item types."""
    return CompletenessRegistry.from_mapping(DEFAULT_RULES)
