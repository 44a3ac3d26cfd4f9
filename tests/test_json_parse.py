# Test tolerant parsing of truncated JSON buffers
import json

import pytest

from item_stream.utils.json_parse import (
    PartialArray,
    PartialObject,
    PartialString,
    is_partial,
    parse_partial_json,
    to_plain,
)


DOCUMENT = {
    "data": {
        "potential_causes": [
            {
                "cause_id": "c1",
                "name_localized": "Chronic stress",
                "explanation_localized": 'Says "rest", uses a \\ and a\nnewline',
                "confidence": 0.82,
                "tags": ["sleep", "mood"],
            },
            {
                "cause_id": 2,
                "name_localized": "Café über \U0001f33f",
                "active": True,
                "retired": False,
                "note": None,
                "score": -1500.25,
                "big": 12345678901234,
            },
        ]
    },
    "meta": {"count": 2, "empty": {}, "list": []},
}


def _is_prefix_of(partial, full) -> bool:
    """True if a parsed prefix value is consistent with the finished value."""
    if isinstance(partial, PartialString):
        return isinstance(full, str) and full.startswith(partial)
    if isinstance(partial, PartialObject):
        return isinstance(full, dict) and all(
            key in full and _is_prefix_of(value, full[key]) for key, value in partial.items()
        )
    if isinstance(partial, PartialArray):
        return (
            isinstance(full, list)
            and len(partial) <= len(full)
            and all(_is_prefix_of(value, full[i]) for i, value in enumerate(partial))
        )
    # Settled values must match exactly, with no partial parts inside
    return to_plain(partial) == full and type(partial) is type(full)


class TestEveryTruncationPoint:
    @pytest.mark.parametrize("ensure_ascii", [True, False])
    def test_every_prefix_is_consistent(self, ensure_ascii):
        """Every prefix parses to None or a value consistent with the full document."""
        text = json.dumps(DOCUMENT, ensure_ascii=ensure_ascii)
        for offset in range(len(text) + 1):
            result = parse_partial_json(text[:offset])
            if result is None:
                continue
            assert isinstance(result, dict), offset
            assert _is_prefix_of(result, DOCUMENT), (offset, text[:offset])

    def test_compact_separators(self):
        text = json.dumps(DOCUMENT, separators=(",", ":"))
        for offset in range(len(text) + 1):
            result = parse_partial_json(text[:offset])
            assert result is None or _is_prefix_of(result, DOCUMENT), offset

    def test_full_document(self):
        result = parse_partial_json(json.dumps(DOCUMENT))
        assert result == DOCUMENT
        assert not is_partial(result)

    def test_idempotent(self):
        """Parsing the same buffer twice gives equal results."""
        text = json.dumps(DOCUMENT)
        for offset in range(0, len(text), 7):
            first = parse_partial_json(text[:offset])
            second = parse_partial_json(text[:offset])
            assert first == second
            assert type(first) is type(second)

    def test_array_only_grows(self):
        """A growing buffer never shrinks the parsed array."""
        text = json.dumps(DOCUMENT)
        previous = 0
        for offset in range(len(text) + 1):
            result = parse_partial_json(text[:offset]) or {}
            causes = (result.get("data") or {}).get("potential_causes") or []
            assert len(causes) >= previous
            previous = len(causes)


class TestPartialMarkers:
    def test_truncated_string_value(self):
        result = parse_partial_json('{"name": "Chronic str')
        assert result == {"name": "Chronic str"}
        assert isinstance(result, PartialObject)
        assert isinstance(result["name"], PartialString)

    def test_closed_string_is_plain(self):
        result = parse_partial_json('{"name": "Chronic stress", "other')
        assert type(result["name"]) is str
        assert "other" not in result

    def test_truncated_key_is_dropped(self):
        assert parse_partial_json('{"a": 1, "na') == {"a": 1}

    def test_key_without_value_is_dropped(self):
        assert parse_partial_json('{"a": 1, "name":') == {"a": 1}
        assert parse_partial_json('{"a": 1, "name": ') == {"a": 1}

    def test_truncated_array(self):
        result = parse_partial_json('{"tags": ["sleep", "mo')
        assert result == {"tags": ["sleep", "mo"]}
        assert isinstance(result["tags"], PartialArray)
        assert type(result["tags"][0]) is str
        assert isinstance(result["tags"][1], PartialString)

    def test_open_nested_object(self):
        result = parse_partial_json('{"data": {"items": [{"id": "x"}, {"id": "y"')
        assert result == {"data": {"items": [{"id": "x"}, {"id": "y"}]}}
        items = result["data"]["items"]
        assert type(items[0]) is dict
        assert isinstance(items[1], PartialObject)

    @pytest.mark.parametrize("text", ['{"n": 12', '{"n": -', '{"n": 1.', '{"n": 1e', '{"n": 1.5e+'])
    def test_truncated_number_is_dropped(self, text):
        assert parse_partial_json(text) == {}

    def test_terminated_number_is_kept(self):
        assert parse_partial_json('{"n": 12, "m": -0.5e2 ') == {"n": 12, "m": -50.0}

    @pytest.mark.parametrize("text", ['{"flag": t', '{"flag": fal', '{"flag": nu'])
    def test_truncated_literal_is_dropped(self, text):
        assert parse_partial_json(text) == {}

    def test_to_plain(self):
        result = parse_partial_json('{"a": ["x", {"b": "y')
        plain = to_plain(result)
        assert plain == {"a": ["x", {"b": "y"}]}
        assert type(plain) is dict
        assert type(plain["a"]) is list
        assert type(plain["a"][1]["b"]) is str


class TestEscapes:
    def test_escapes_decoded(self):
        result = parse_partial_json(r'{"s": "a\"b\\c\/d\n\té')
        assert result == {"s": 'a"b\\c/d\n\té'}

    def test_dangling_backslash_dropped(self):
        assert parse_partial_json('{"s": "abc\\') == {"s": "abc"}

    @pytest.mark.parametrize("tail", ["\\u", "\\u0", "\\u00", "\\u00e"])
    def test_partial_unicode_escape_dropped(self, tail):
        assert parse_partial_json('{"s": "abc' + tail) == {"s": "abc"}

    def test_surrogate_pair(self):
        assert parse_partial_json(r'{"s": "\ud83c\udf3f"}') == {"s": "\U0001f33f"}
        assert parse_partial_json(r'{"s": "\ud83c\udf3f') == {"s": "\U0001f33f"}

    @pytest.mark.parametrize("tail", ["\\ud83c", "\\ud83c\\", "\\ud83c\\u", "\\ud83c\\udf3"])
    def test_half_surrogate_pair_dropped(self, tail):
        assert parse_partial_json('{"s": "x' + tail) == {"s": "x"}


class TestDocumentBoundaries:
    @pytest.mark.parametrize("text", [None, "", "   ", "\n\t"])
    def test_empty_input(self, text):
        assert parse_partial_json(text) is None

    def test_no_document_yet(self):
        assert parse_partial_json("Here is the JSON you asked for:") is None

    def test_markdown_fence(self):
        text = '```json\n{"data": {"items": [1, 2]}}\n```'
        assert parse_partial_json(text) == {"data": {"items": [1, 2]}}

    def test_open_markdown_fence(self):
        assert parse_partial_json('```json\n{"data": {"items": [1, 2') == {"data": {"items": [1]}}

    def test_bracket_in_leading_prose(self):
        text = 'Here is [the] result: {"data": {"items": [1, 2]}}'
        assert parse_partial_json(text) == {"data": {"items": [1, 2]}}
        assert parse_partial_json(text[:-3]) == {"data": {"items": [1]}}

    def test_malformed_inner_object_not_promoted(self):
        assert parse_partial_json('{"a": {"b": 1} x') is None

    def test_top_level_array(self):
        assert parse_partial_json('[{"a": 1}, {"a": 2}, {"a') == [{"a": 1}, {"a": 2}, {}]

    def test_stray_commas_tolerated(self):
        assert parse_partial_json('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    @pytest.mark.parametrize("text", ['{"a" 1}', '{a: 1}', '{"a": @}', '{"s": "\\q"}'])
    def test_malformed_returns_none(self, text):
        assert parse_partial_json(text) is None

    def test_deep_nesting_returns_none(self):
        assert parse_partial_json("[" * 100000) is None
