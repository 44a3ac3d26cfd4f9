"""
Consumer-side reconstruction of one exchange.
"""

from __future__ import annotations

from typing import Any, Callable

from item_stream.types import (
    AccumulationState,
    CompleteEvent,
    ErrorEvent,
    ItemEvent,
    StreamEvent,
    TextEvent,
)

ItemTransform = Callable[[dict[str, Any]], Any]


class StreamReconstructor:
    """
    Turns an ordered event sequence into state a caller can observe.

    ``partial_items`` grows as items arrive and is only cleared by ``begin``
    or ``reset``. Events arriving after the terminal event are ignored.
    """

    def __init__(self, transform: ItemTransform | None = None) -> None:
        self._transform = transform
        self._state = AccumulationState()

    def begin(self) -> None:
        """Start a fresh exchange."""
        self._state = AccumulationState(is_active=True)

    def apply(self, event: StreamEvent) -> bool:
        """Apply one event. Returns False if the event was ignored."""
        state = self._state
        if state.is_done or (state.last_error is not None and not state.is_active):
            return False

        if isinstance(event, ItemEvent):
            item = self._transform(event.data) if self._transform else event.data
            state.partial_items.append(item)
        elif isinstance(event, TextEvent):
            state.streaming_text += event.content
        elif isinstance(event, CompleteEvent):
            state.final_result = event.data
            state.is_done = True
            state.is_active = False
        elif isinstance(event, ErrorEvent):
            self.fail(event.message)
        else:
            return False
        return True

    def fail(self, message: str) -> None:
        """Record a failure. Items received so far stay visible."""
        self._state.last_error = message
        self._state.is_active = False

    def stop(self) -> None:
        """Mark the exchange inactive without recording an error (cancellation)."""
        self._state.is_active = False

    def reset(self) -> None:
        self._state = AccumulationState()

    @property
    def state(self) -> AccumulationState:
        """Snapshot of the accumulation state."""
        return self._state.model_copy(update={"partial_items": list(self._state.partial_items)})

    @property
    def partial_items(self) -> list[Any]:
        return list(self._state.partial_items)

    @property
    def streaming_text(self) -> str:
        return self._state.streaming_text

    @property
    def final_result(self) -> Any:
        return self._state.final_result

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    @property
    def is_done(self) -> bool:
        return self._state.is_done

    @property
    def last_error(self) -> str | None:
        return self._state.last_error
