# Test exactly-once, in-order emission tracking
from item_stream.completeness import find_complete_items
from item_stream.tracker import EmissionTracker
from item_stream.types import ArrayPath
from item_stream.utils.json_parse import parse_partial_json


PATH = ArrayPath.parse("data.potential_causes")

CHUNK_1 = (
    '{"data": {"potential_causes": ['
    '{"cause_id": "c1", "name_localized": "Chronic stress", '
    '"explanation_localized": "Cortisol stays elevated for weeks."}, '
    '{"cause_id": "c2", "name_localized": "Poor sleep", '
    '"explanation_localized": "Fragmented rest leaves the body...'
)
CHUNK_2 = ' drained by noon."}]}}'


def _scan(tracker, buffer):
    snapshot = parse_partial_json(buffer)
    return tracker.track(find_complete_items(snapshot, tracker.path, tracker.rule, tracker.watermark))


class TestEmissionTracker:
    def test_two_chunk_scenario(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)

        first = _scan(tracker, CHUNK_1)
        assert [record.index for record in first] == [0]
        assert tracker.watermark == 1

        second = _scan(tracker, CHUNK_1 + CHUNK_2)
        assert [record.index for record in second] == [1]
        assert tracker.watermark == 2
        assert second[0].payload["explanation_localized"] == (
            "Fragmented rest leaves the body... drained by noon."
        )

    def test_rescanning_same_buffer_emits_nothing(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        buffer = CHUNK_1 + CHUNK_2
        assert len(_scan(tracker, buffer)) == 2
        assert _scan(tracker, buffer) == []
        assert _scan(tracker, buffer) == []
        assert tracker.watermark == 2

    def test_record_shape(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        record = _scan(tracker, CHUNK_1)[0]
        assert record.type_name == "potential_causes"
        assert record.array_path == "data.potential_causes"
        assert record.payload == {
            "cause_id": "c1",
            "name_localized": "Chronic stress",
            "explanation_localized": "Cortisol stays elevated for weeks.",
        }

    def test_seen_keys(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        _scan(tracker, CHUNK_1 + CHUNK_2)
        assert tracker.seen_keys == {"potential_causes-0-c1", "potential_causes-1-c2"}

    def test_gap_blocks_later_items(self, causes_rule):
        """A later item that is complete waits for the earlier one."""
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        item = {"cause_id": "c2", "name_localized": "Poor sleep", "explanation_localized": "Rest is fragmented."}
        assert tracker.track([(1, item)]) == []
        assert tracker.watermark == 0

    def test_unsorted_candidates(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        first = {"cause_id": "c1", "name_localized": "Chronic stress", "explanation_localized": "Cortisol is high."}
        second = {"cause_id": "c2", "name_localized": "Poor sleep", "explanation_localized": "Rest is fragmented."}
        records = tracker.track([(1, second), (0, first)])
        assert [record.index for record in records] == [0, 1]

    def test_already_delivered_index_skipped(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        item = {"cause_id": "c1", "name_localized": "Chronic stress", "explanation_localized": "Cortisol is high."}
        assert len(tracker.track([(0, item)])) == 1
        assert tracker.track([(0, item)]) == []

    def test_reset(self, causes_rule):
        tracker = EmissionTracker("potential_causes", PATH, causes_rule)
        _scan(tracker, CHUNK_1)
        tracker.reset()
        assert tracker.watermark == 0
        assert tracker.seen_keys == frozenset()
        assert [record.index for record in _scan(tracker, CHUNK_1)] == [0]
