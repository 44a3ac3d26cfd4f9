"""
JSON parsing utilities for streaming responses.

The model writes one JSON document token by token, so the buffer is almost
always a truncated prefix. ``parse_partial_json`` reads as much of it as can
be trusted and never raises. Values that were still being written when the
input ran out come back as ``PartialString``, ``PartialObject`` or
``PartialArray``; they compare equal to their plain counterparts but let
callers tell settled values from growing ones.
"""

from __future__ import annotations

import json
import re
from typing import Any

_WHITESPACE = " \t\r\n"

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

_STRING_RUN = re.compile(r'[^"\\]*')
_HEX4 = re.compile(r"[0-9a-fA-F]{4}")
_HEX_PREFIX = re.compile(r"[0-9a-fA-F]{0,3}")
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
_NUMBER_PREFIX = re.compile(r"-?\d*(?:\.\d*)?(?:[eE][-+]?\d*)?")
_OPENER = re.compile(r"[{\[]")
_LITERALS: tuple[tuple[str, Any], ...] = (("true", True), ("false", False), ("null", None))

# Returned when the input ended before a value could be read at all.
_MISSING = object()


class PartialString(str):
    """A string value whose closing quote has not arrived yet."""


class PartialObject(dict):
    """An object whose closing brace has not arrived yet."""


class PartialArray(list):
    """An array whose closing bracket has not arrived yet."""


def is_partial(value: Any) -> bool:
    """True if the value was cut off by the end of the input."""
    return isinstance(value, (PartialString, PartialObject, PartialArray))


def to_plain(value: Any) -> Any:
    """Copy a parsed value into plain dict/list/str types."""
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    if isinstance(value, str):
        return str(value)
    return value


class _MalformedJSON(Exception):
    def __init__(self, pos: int) -> None:
        super().__init__(f"Malformed JSON at offset {pos}")
        self.pos = pos


class _PartialParser:
    """Recursive-descent reader that stops cleanly at the end of the input."""

    def __init__(self, text: str, pos: int) -> None:
        self.text = text
        self.pos = pos
        self.end = len(text)
        self.truncated = False

    def _skip_whitespace(self) -> None:
        while self.pos < self.end and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def parse_value(self) -> Any:
        self._skip_whitespace()
        if self.pos >= self.end:
            self.truncated = True
            return _MISSING

        ch = self.text[self.pos]
        if ch == "{":
            return self._parse_object()
        if ch == "[":
            return self._parse_array()
        if ch == '"':
            return self._parse_string()
        if ch == "-" or ch.isdigit():
            return self._parse_number()
        return self._parse_literal()

    def _parse_object(self) -> dict[str, Any]:
        self.pos += 1
        result: dict[str, Any] = {}
        while True:
            self._skip_whitespace()
            if self.pos >= self.end:
                self.truncated = True
                return PartialObject(result)

            ch = self.text[self.pos]
            if ch == "}":
                self.pos += 1
                return result
            if ch == ",":
                self.pos += 1
                continue
            if ch != '"':
                raise _MalformedJSON(self.pos)

            key = self._parse_string()
            if self.truncated:
                # A key without its value carries nothing usable.
                return PartialObject(result)

            self._skip_whitespace()
            if self.pos >= self.end:
                self.truncated = True
                return PartialObject(result)
            if self.text[self.pos] != ":":
                raise _MalformedJSON(self.pos)
            self.pos += 1

            value = self.parse_value()
            if value is not _MISSING:
                result[key] = value
            if self.truncated:
                return PartialObject(result)

    def _parse_array(self) -> list[Any]:
        self.pos += 1
        result: list[Any] = []
        while True:
            self._skip_whitespace()
            if self.pos >= self.end:
                self.truncated = True
                return PartialArray(result)

            ch = self.text[self.pos]
            if ch == "]":
                self.pos += 1
                return result
            if ch == ",":
                self.pos += 1
                continue

            value = self.parse_value()
            if value is not _MISSING:
                result.append(value)
            if self.truncated:
                return PartialArray(result)

    def _parse_string(self) -> str:
        text = self.text
        self.pos += 1
        parts: list[str] = []
        while True:
            run = _STRING_RUN.match(text, self.pos)
            parts.append(run.group())
            self.pos = run.end()

            if self.pos >= self.end:
                self.truncated = True
                return PartialString("".join(parts))

            if text[self.pos] == '"':
                self.pos += 1
                return "".join(parts)

            # Backslash escape
            if self.pos + 1 >= self.end:
                self.truncated = True
                self.pos = self.end
                return PartialString("".join(parts))

            esc = text[self.pos + 1]
            if esc == "u":
                decoded = self._read_unicode_escape()
                if decoded is None:
                    return PartialString("".join(parts))
                parts.append(decoded)
            elif esc in _ESCAPES:
                parts.append(_ESCAPES[esc])
                self.pos += 2
            else:
                raise _MalformedJSON(self.pos)

    def _read_unicode_escape(self) -> str | None:
        """Decode ``\\uXXXX`` (and a following low surrogate). None means the input ran out."""
        text = self.text
        start = self.pos
        digits = _HEX4.match(text, start + 2)
        if digits is None:
            if _HEX_PREFIX.fullmatch(text, start + 2):
                self.truncated = True
                self.pos = self.end
                return None
            raise _MalformedJSON(start)

        code = int(digits.group(), 16)
        self.pos = start + 6
        if 0xD800 <= code < 0xDC00:
            rest = text[self.pos:self.pos + 6]
            if len(rest) < 6 and "\\u".startswith(rest[:2]) and _HEX_PREFIX.fullmatch(rest[2:]):
                # Low surrogate still on its way
                self.truncated = True
                self.pos = self.end
                return None
            low = _HEX4.fullmatch(rest, 2) if rest.startswith("\\u") else None
            if low is not None:
                low_code = int(low.group(), 16)
                if 0xDC00 <= low_code < 0xE000:
                    self.pos += 6
                    return chr(0x10000 + ((code - 0xD800) << 10) + (low_code - 0xDC00))
        return chr(code)

    def _parse_number(self) -> Any:
        if _NUMBER_PREFIX.fullmatch(self.text, self.pos):
            # The number runs into the end of the input, so more digits may follow.
            self.truncated = True
            self.pos = self.end
            return _MISSING

        match = _NUMBER.match(self.text, self.pos)
        if match is None:
            raise _MalformedJSON(self.pos)
        self.pos = match.end()
        literal = match.group()
        if any(c in literal for c in ".eE"):
            return float(literal)
        return int(literal)

    def _parse_literal(self) -> Any:
        for word, value in _LITERALS:
            if self.text.startswith(word, self.pos):
                self.pos += len(word)
                return value
            rest = self.text[self.pos:self.pos + len(word)]
            if len(rest) < len(word) and word.startswith(rest):
                self.truncated = True
                self.pos = self.end
                return _MISSING
        raise _MalformedJSON(self.pos)


def parse_partial_json(text: str | None) -> Any | None:
    """
    Parse a possibly truncated JSON document.

    Returns the best available object graph, or None when nothing usable can
    be read yet (empty input, no document start, or malformed content).
    Complete trailing values are kept; a value cut off by the end of the
    input is kept only if it is a string, object or array (marked partial).
    Cut-off numbers, literals and object keys are dropped. Anything after a
    complete top-level document (e.g. a closing markdown fence) is ignored.

    Args:
        text: The full buffer accumulated so far

    Returns:
        Parsed value, or None
    """
    if not text or not text.strip():
        return None

    # Try standard parsing first (fastest for complete JSON)
    try:
        return json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        pass

    opener = _OPENER.search(text)
    while opener is not None:
        try:
            value = _PartialParser(text, opener.start()).parse_value()
        except RecursionError:
            return None
        except _MalformedJSON as e:
            # A bracket in leading prose; resume at the next opener past the bad spot
            opener = _OPENER.search(text, e.pos + 1)
            continue
        return None if value is _MISSING else value
    return None
