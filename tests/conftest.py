# Shared fixtures for item-stream tests
import json

import pytest

from item_stream.registry import CompletenessRegistry


CAUSES = [
    {
        "cause_id": "c1",
        "name_localized": "Chronic stress",
        "explanation_localized": "Cortisol stays elevated for weeks.",
        "confidence": 0.82,
    },
    {
        "cause_id": "c2",
        "name_localized": "Poor sleep",
        "explanation_localized": "Fragmented rest drains energy by noon.",
        "tags": ["sleep", "rest"],
    },
    {
        "cause_id": "c3",
        "name_localized": "Dehydration",
        "explanation_localized": "Too little water thickens the blood.",
    },
]

CAUSES_DOCUMENT = {"data": {"potential_causes": CAUSES}}


def causes_chunks() -> list[str]:
    """The causes document split so each chunk closes exactly one item."""
    head = '{"data": {"potential_causes": ['
    items = [json.dumps(item) for item in CAUSES]
    return [head + items[0] + ", ", items[1] + ", ", items[2] + "]}}"]


@pytest.fixture
def registry() -> CompletenessRegistry:
    return CompletenessRegistry.from_mapping({
        "potential_causes": {
            "idField": "cause_id",
            "requiredFields": ["name_localized", "explanation_localized"],
            "minLengths": {"name_localized": 3, "explanation_localized": 10},
            "optionalFields": ["confidence", "tags"],
            "displayName": "Potential Cause",
        },
    })


@pytest.fixture
def causes_rule(registry):
    return registry.get("potential_causes")
