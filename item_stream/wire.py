"""
Wire format for stream events.

Each event is one JSON object framed as a server-sent event record::

    data: {"type": "item", "field": "data.potential_causes", "index": 0, ...}\\n\\n

Records are self-delimiting, so a reader only has to split on newlines.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from item_stream.errors import StreamTransportError
from item_stream.types import StreamEvent

DATA_PREFIX = "data:"

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_event(event: StreamEvent) -> str:
    """Serialize an event as one ``data:`` record."""
    return f"{DATA_PREFIX} {event.model_dump_json(by_alias=True)}\n\n"


def decode_event(data: str | dict[str, Any]) -> StreamEvent:
    """
    Parse one record payload into a typed event.

    Raises:
        StreamTransportError: If the payload is not a known event
    """
    try:
        if isinstance(data, str):
            return _event_adapter.validate_json(data)
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        preview = data if isinstance(data, str) else json.dumps(data)
        raise StreamTransportError(f"Malformed stream record: {preview[:200]}") from e


class SSELineDecoder:
    """
    Incremental splitter for ``data:`` lines.

    Feed raw text as it arrives; complete lines are returned as payload
    strings and a trailing partial line is kept for the next call.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> list[str]:
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [payload for payload in map(self._payload, lines) if payload]

    def flush(self) -> list[str]:
        """Return whatever is left once the body has ended."""
        rest, self._buffer = self._buffer, ""
        payload = self._payload(rest)
        return [payload] if payload else []

    @staticmethod
    def _payload(line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None
        return line[len(DATA_PREFIX):].strip() or None
