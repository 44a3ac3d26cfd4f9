"""
Consumer-side event sources: how a client reaches a producer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from item_stream.config import ProducerSettings
from item_stream.errors import StreamTransportError
from item_stream.producer import start_producer
from item_stream.registry import CompletenessRegistry
from item_stream.sources import GenerationSource
from item_stream.types import StreamEvent, StreamRequest
from item_stream.wire import SSELineDecoder, decode_event

log = logging.getLogger(__name__)


class EventSource(Protocol):
    """
    Opens one exchange and yields its events in order.

    Closing the returned iterator (``aclose``) closes the transport.
    """

    def open(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        ...


class HttpEventSource:
    """Reads events from a producer served over HTTP (see ``item_stream.server``)."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.url = url
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._client = client

    def open(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        return self._events(request)

    async def _events(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        client = self._client or httpx.AsyncClient()
        log.debug("Opening event stream %s for %s", self.url, request.item_type)
        try:
            # Inactivity is policed by the connection policy, not here
            async with client.stream(
                "POST",
                self.url,
                headers=self.headers,
                json=request.model_dump(mode="json"),
                timeout=None,
            ) as response:
                if response.status_code != 200:
                    raise StreamTransportError(await _error_message(response))

                decoder = SSELineDecoder()
                async for text in response.aiter_text():
                    for data in decoder.feed(text):
                        yield decode_event(data)
                for data in decoder.flush():
                    yield decode_event(data)
        except httpx.HTTPError as e:
            raise StreamTransportError(f"Stream connection failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()


async def _error_message(response: httpx.Response) -> str:
    message = f"Stream request failed: {response.status_code}"
    try:
        data = json.loads(await response.aread())
    except ValueError:
        return message
    if isinstance(data, dict) and data.get("error"):
        message = f"Stream request failed: {data['error']}"
    return message


class LocalEventSource:
    """Runs the producer in-process and reads its channel directly."""

    def __init__(
        self,
        source: GenerationSource,
        registry: CompletenessRegistry,
        settings: ProducerSettings | None = None,
    ) -> None:
        self.source = source
        self.registry = registry
        self.settings = settings

    def open(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        return self._events(request)

    async def _events(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        channel, task = start_producer(request, self.source, self.registry, self.settings)
        try:
            async for event in channel:
                yield event
        finally:
            channel.close()
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
