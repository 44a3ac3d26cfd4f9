"""
Connection policy: timeout, retry and cancellation around one exchange.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from item_stream.config import ConnectionConfig
from item_stream.consumer import ItemTransform, StreamReconstructor
from item_stream.errors import GenerationError, ItemStreamError, StreamTimeoutError, StreamTransportError
from item_stream.registry import CompletenessRegistry, default_registry
from item_stream.transports import EventSource
from item_stream.types import (
    AccumulationState,
    CompleteEvent,
    ErrorEvent,
    ExchangeState,
    StreamEvent,
    StreamRequest,
)

log = logging.getLogger(__name__)


class StreamingClient:
    """
    Supervises exchanges against an event source.

    Each attempt reads into its own reconstructor. The caller-visible state
    switches to a new attempt once that attempt delivers its first event, so
    items from a failed attempt stay visible until a retry has actually
    started producing, and are never mixed with the retry's items.

    Between a failed attempt and its retry the state is briefly FAILED;
    it only stays FAILED once retries are exhausted.
    """

    def __init__(
        self,
        event_source: EventSource,
        config: ConnectionConfig | None = None,
        transform: ItemTransform | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        registry: CompletenessRegistry | None = None,
    ) -> None:
        self.event_source = event_source
        # When None, the policy follows each request's item type
        self.config = config
        self.registry = registry if registry is not None else default_registry()
        self._transform = transform
        self._sleep = sleep
        self._reconstructor = StreamReconstructor(transform)
        self._state = ExchangeState.IDLE
        self._attempts = 0
        self._task: asyncio.Task[None] | None = None
        self._cancel_requested = False
        self._listeners: set[Callable[[StreamEvent], None]] = set()

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def attempts(self) -> int:
        """Attempts made in the current exchange."""
        return self._attempts

    @property
    def accumulation(self) -> AccumulationState:
        return self._reconstructor.state

    @property
    def partial_items(self) -> list[Any]:
        return self._reconstructor.partial_items

    @property
    def streaming_text(self) -> str:
        return self._reconstructor.streaming_text

    @property
    def final_result(self) -> Any:
        return self._reconstructor.final_result

    @property
    def is_active(self) -> bool:
        return self._reconstructor.is_active

    @property
    def is_done(self) -> bool:
        return self._reconstructor.is_done

    @property
    def last_error(self) -> str | None:
        return self._reconstructor.last_error

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def config_for(self, request: StreamRequest) -> ConnectionConfig:
        """Connection policy for one request, sized by its item type's timeout profile."""
        if self.config is not None:
            return self.config
        if request.item_type in self.registry:
            return self.registry.connection_config(request.item_type)
        return ConnectionConfig()

    def subscribe(self, fn: Callable[[StreamEvent], None]) -> Callable[[], None]:
        """Subscribe to events applied to the visible state."""
        self._listeners.add(fn)
        return lambda: self._listeners.discard(fn)

    async def start(self, request: StreamRequest) -> Any:
        """
        Run one exchange to a terminal state.

        Returns the final result, or None if the exchange failed or was
        cancelled; ``last_error`` and ``state`` tell which.

        Raises:
            RuntimeError: If an exchange is already running
        """
        if self.running:
            raise RuntimeError("An exchange is already running; cancel it first")

        self._reconstructor = StreamReconstructor(self._transform)
        self._reconstructor.begin()
        self._attempts = 0
        self._cancel_requested = False
        self._set_state(ExchangeState.CONNECTING)

        self._task = asyncio.get_event_loop().create_task(self._run(request, self.config_for(request)))
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
        return self._reconstructor.final_result

    async def cancel(self) -> None:
        """Cancel the running exchange and wait for it to wind down."""
        if not self.running:
            return
        self._cancel_requested = True
        self._mark_cancelled()
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    def reset(self) -> None:
        """
        Clear all state for a fresh exchange.

        Raises:
            RuntimeError: If an exchange is still running
        """
        if self.running:
            raise RuntimeError("Cannot reset while an exchange is running; cancel it first")
        self._reconstructor = StreamReconstructor(self._transform)
        self._attempts = 0
        self._task = None
        self._cancel_requested = False
        self._state = ExchangeState.IDLE

    def _set_state(self, state: ExchangeState) -> None:
        if state is not self._state:
            log.debug("Exchange state %s -> %s", self._state.value, state.value)
        self._state = state

    def _mark_cancelled(self) -> None:
        self._set_state(ExchangeState.CANCELLED)
        self._reconstructor.stop()

    def _emit(self, event: StreamEvent) -> None:
        for listener in self._listeners:
            listener(event)

    async def _run(self, request: StreamRequest, config: ConnectionConfig) -> None:
        max_attempts = config.max_retries + 1
        try:
            while True:
                self._attempts += 1
                self._set_state(ExchangeState.CONNECTING)
                attempt = StreamReconstructor(self._transform)
                attempt.begin()

                try:
                    await self._run_attempt(request, attempt, config)
                except (GenerationError, StreamTransportError) as e:
                    if self._attempts >= max_attempts:
                        self._fail(f"Streaming failed after {self._attempts} attempt(s): {e}")
                        return
                    self._set_state(ExchangeState.FAILED)
                    delay_ms = config.backoff_ms(self._attempts)
                    log.warning(
                        "Attempt %d/%d for %s failed: %s; retrying in %d ms",
                        self._attempts,
                        max_attempts,
                        request.item_type,
                        e,
                        delay_ms,
                    )
                    await self._sleep(delay_ms / 1000)
                    continue
                except ItemStreamError as e:
                    # Not a transient condition; retrying cannot help
                    self._fail(str(e))
                    return
                except Exception as e:
                    self._fail(f"Unexpected streaming failure: {e}")
                    raise

                if self._state is ExchangeState.CANCELLED:
                    return
                self._set_state(ExchangeState.COMPLETED)
                log.info(
                    "Exchange for %s completed after %d attempt(s) with %d item(s)",
                    request.item_type,
                    self._attempts,
                    len(self._reconstructor.partial_items),
                )
                return
        except asyncio.CancelledError:
            self._mark_cancelled()
            raise

    async def _run_attempt(
        self, request: StreamRequest, attempt: StreamReconstructor, config: ConnectionConfig
    ) -> None:
        timeout = config.timeout_ms / 1000
        events = self.event_source.open(request)
        try:
            while True:
                try:
                    async with asyncio.timeout(timeout):
                        event = await anext(events)
                except StopAsyncIteration:
                    raise StreamTransportError("Stream ended without a terminal event") from None
                except TimeoutError:
                    raise StreamTimeoutError(
                        f"No stream event received within {config.timeout_ms} ms"
                    ) from None

                if self._state is ExchangeState.CANCELLED:
                    return
                if self._state is ExchangeState.CONNECTING:
                    self._reconstructor = attempt
                    self._set_state(ExchangeState.STREAMING)

                if isinstance(event, ErrorEvent):
                    # Recorded on the visible state only once retries run out
                    self._emit(event)
                    raise GenerationError(event.message)

                attempt.apply(event)
                self._emit(event)
                if isinstance(event, CompleteEvent):
                    return
        finally:
            await events.aclose()

    def _fail(self, message: str) -> None:
        log.warning(message)
        self._reconstructor.fail(message)
        self._set_state(ExchangeState.FAILED)


class ExchangeOutcome(BaseModel):
    """Result of one exchange run by ``run_parallel``."""

    model_config = ConfigDict(extra="forbid")

    request: StreamRequest
    state: ExchangeState
    final_result: Any = None
    partial_items: list[Any] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is ExchangeState.COMPLETED


async def run_parallel(
    client_factory: Callable[[StreamRequest], StreamingClient],
    requests: Sequence[StreamRequest],
) -> list[ExchangeOutcome]:
    """
    Run independent exchanges concurrently, one client per request.

    Every exchange settles on its own; a failure in one does not affect the
    others. Outcomes are returned in request order.
    """
    clients = [client_factory(request) for request in requests]
    results = await asyncio.gather(
        *(client.start(request) for client, request in zip(clients, requests)),
        return_exceptions=True,
    )

    outcomes: list[ExchangeOutcome] = []
    for request, client, result in zip(requests, clients, results):
        error = client.last_error
        if isinstance(result, BaseException) and error is None:
            error = str(result) or result.__class__.__name__
        outcomes.append(
            ExchangeOutcome(
                request=request,
                state=client.state,
                final_result=client.final_result,
                partial_items=client.partial_items,
                error=error,
            )
        )
    return outcomes
