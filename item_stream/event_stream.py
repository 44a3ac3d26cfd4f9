"""
Event stream classes for async iteration over delivery events.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from typing import Callable, Generic, TypeVar

from item_stream.types import StreamEvent, TerminalEvent

T = TypeVar("T")
R = TypeVar("R")


class EventStream(Generic[T, R]):
    """
    Generic single-consumer event stream.

    Supports both async iteration and awaiting the final result. Pushing
    never blocks; once the stream has ended, further pushes are ignored.
    """

    def __init__(
        self,
        is_complete: Callable[[T], bool],
        extract_result: Callable[[T], R],
    ) -> None:
        self._queue: deque[T] = deque()
        self._waiting: deque[asyncio.Future[tuple[T | None, bool]]] = deque()
        self._done = False
        self._is_complete = is_complete
        self._extract_result = extract_result
        self._result: R | None = None
        self._finished = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._done

    def push(self, event: T) -> bool:
        """Push an event to the stream. Returns False if the stream was already closed."""
        if self._done:
            return False

        if self._is_complete(event):
            self._done = True
            self._result = self._extract_result(event)

        # Deliver to waiting consumer or queue it
        while self._waiting:
            waiter = self._waiting.popleft()
            if not waiter.done():
                waiter.set_result((event, False))
                break
        else:
            self._queue.append(event)

        if self._done:
            self._release_waiters()
        return True

    def end(self, result: R | None = None) -> None:
        """End the stream. Safe to call more than once."""
        self._done = True
        if result is not None and self._result is None:
            self._result = result
        self._release_waiters()

    def close(self) -> None:
        """
        Close the stream from the consuming side.

        Queued events are discarded and a pending iteration returns.
        """
        self._queue.clear()
        self.end()

    def _release_waiters(self) -> None:
        while self._waiting:
            waiter = self._waiting.popleft()
            if not waiter.done():
                waiter.set_result((None, True))
        self._finished.set()

    async def __aiter__(self) -> AsyncIterator[T]:
        """Async iterator implementation."""
        while True:
            if self._queue:
                yield self._queue.popleft()
            elif self._done:
                return
            else:
                loop = asyncio.get_event_loop()
                future: asyncio.Future[tuple[T | None, bool]] = loop.create_future()
                self._waiting.append(future)
                value, done = await future
                if done:
                    return
                if value is not None:
                    yield value

    async def result(self) -> R | None:
        """Await the end of the stream. None if it ended without a terminal event."""
        await self._finished.wait()
        return self._result


class StreamEventChannel(EventStream[StreamEvent, TerminalEvent]):
    """Channel carrying one exchange's events from producer to consumer."""

    def __init__(self) -> None:
        super().__init__(
            is_complete=lambda event: event.type in ("complete", "error"),
            extract_result=lambda event: event,
        )
