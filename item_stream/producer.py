"""
Producer loop: turns a text-chunk stream into delivery events.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing

from item_stream.completeness import find_complete_items
from item_stream.config import ProducerSettings
from item_stream.event_stream import StreamEventChannel
from item_stream.registry import CompletenessRegistry
from item_stream.sources import GenerationSource
from item_stream.tracker import EmissionTracker
from item_stream.types import (
    CompleteEvent,
    CompletenessRule,
    ErrorEvent,
    ItemEvent,
    StreamEvent,
    StreamRequest,
    StreamStats,
    TextEvent,
)
from item_stream.utils.json_parse import parse_partial_json, to_plain

log = logging.getLogger(__name__)


def resolve_rule(request: StreamRequest, registry: CompletenessRegistry) -> CompletenessRule | None:
    """Rule for a request; raw-text requests need none. Raises UnknownItemTypeError."""
    if request.mode == "raw-text":
        return None
    return registry.get(request.item_type)


class ProducerLoop:
    """
    Owns one exchange's raw buffer and emission state.

    Everything here runs on a single coroutine, so the buffer, watermark and
    seen keys are never touched concurrently.
    """

    def __init__(
        self,
        request: StreamRequest,
        rule: CompletenessRule | None,
        channel: StreamEventChannel,
        settings: ProducerSettings | None = None,
    ) -> None:
        if request.mode == "structured" and rule is None:
            raise ValueError("Structured mode requires a completeness rule")

        self.request = request
        self.rule = rule
        self.channel = channel
        self.settings = settings or ProducerSettings()
        self.path = request.resolve_path(rule)
        self.tracker = (
            EmissionTracker(request.item_type, self.path, rule) if rule is not None else None
        )
        self._chunks: list[str] = []
        self._length = 0
        self._items_sent = 0

    @property
    def buffer(self) -> str:
        return "".join(self._chunks)

    @property
    def stats(self) -> StreamStats:
        return StreamStats(
            chunks=len(self._chunks),
            items_sent=self._items_sent,
            buffer_length=self._length,
        )

    def _emit(self, event: StreamEvent) -> bool:
        # Writing to a closed channel is a no-op; the consumer already left.
        return self.channel.push(event)

    def scan(self) -> int:
        """Run one parse/detect/track pass. Returns the number of items emitted."""
        if self.tracker is None:
            return 0

        snapshot = parse_partial_json(self.buffer)
        if snapshot is None:
            return 0

        candidates = find_complete_items(snapshot, self.path, self.rule, self.tracker.watermark)
        records = self.tracker.track(candidates)
        for record in records:
            if not self._emit(ItemEvent.from_record(record)):
                break
            self._items_sent += 1
            log.debug(
                "Sent complete %s #%d: %s",
                self.rule.display_name or self.request.item_type,
                record.index,
                record.payload.get(self.rule.primary_display_field, "Unknown"),
            )
        return len(records)

    async def run(self, source: GenerationSource) -> None:
        """
        Drive the exchange to its terminal event.

        Exactly one of CompleteEvent or ErrorEvent is written, and the channel
        is ended afterwards. If the channel closes early the loop stops
        reading from the source.
        """
        raw_text = self.request.mode == "raw-text"
        try:
            async with aclosing(source(self.request)) as chunks:
                async for chunk in chunks:
                    if self.channel.closed:
                        log.debug("Channel closed after %d chunks; stopping", len(self._chunks))
                        return
                    self._chunks.append(chunk)
                    self._length += len(chunk)
                    count = len(self._chunks)

                    if raw_text:
                        self._emit(TextEvent(content=chunk))
                    elif count % self.settings.parse_every == 0:
                        self.scan()

                    if count % self.settings.progress_log_every == 0:
                        log.debug(
                            "Progress: buffer=%d chunks=%d items=%d",
                            self._length,
                            count,
                            self._items_sent,
                        )
        except asyncio.CancelledError:
            self.channel.end()
            raise
        except Exception as e:
            log.warning("Generation failed after %d chunks: %s", len(self._chunks), e)
            self._emit(ErrorEvent(message=str(e) or e.__class__.__name__))
            self.channel.end()
            return

        if self.channel.closed:
            return

        if raw_text:
            self._emit(CompleteEvent(data=self.buffer, stats=self.stats))
        else:
            self.scan()
            final = parse_partial_json(self.buffer)
            if final is None:
                log.warning("No usable document in final buffer (%d chars)", self._length)
                self._emit(ErrorEvent(message="Generation finished without a usable JSON document"))
            else:
                self._emit(CompleteEvent(data=to_plain(final), stats=self.stats))
                log.info(
                    "Stream complete: chunks=%d items=%d buffer=%d",
                    len(self._chunks),
                    self._items_sent,
                    self._length,
                )
        self.channel.end()


def start_producer(
    request: StreamRequest,
    source: GenerationSource,
    registry: CompletenessRegistry,
    settings: ProducerSettings | None = None,
) -> tuple[StreamEventChannel, asyncio.Task[None]]:
    """
    Start a producer for a request on the running loop.

    Raises:
        UnknownItemTypeError: If a structured request names an unknown item type
    """
    channel = StreamEventChannel()
    producer = ProducerLoop(request, resolve_rule(request, registry), channel, settings)
    task = asyncio.get_event_loop().create_task(producer.run(source))
    return channel, task
