"""
Generation sources: where the producer's text chunks come from.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any, Protocol

import httpx

from item_stream.config import StreamSettings, get_env_api_key
from item_stream.errors import GenerationError
from item_stream.types import StreamRequest
from item_stream.wire import SSELineDecoder

log = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a structured data generator. Answer with a single JSON object "
    "and nothing else."
)


class GenerationSource(Protocol):
    """
    Protocol for chunk sources.

    Calling a source returns an async generator of text chunks. The producer
    closes it with ``aclose()`` as soon as it stops reading.
    """

    def __call__(self, request: StreamRequest) -> AsyncIterator[str]:
        ...


def chunk_text(text: str, size: int) -> list[str]:
    """Split text into ``size``-character chunks."""
    if size < 1:
        raise ValueError("size must be positive")
    return [text[i:i + size] for i in range(0, len(text), size)]


class StaticSource:
    """
    Replays a fixed chunk sequence.

    Optionally raises GenerationError once ``fail_after`` chunks have been
    yielded, to simulate an upstream that dies mid-answer.
    """

    def __init__(
        self,
        chunks: Iterable[str],
        fail_after: int | None = None,
        error_message: str = "Generation stream ended unexpectedly",
        delay: float = 0.0,
    ) -> None:
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.error_message = error_message
        self.delay = delay
        self.calls = 0

    def __call__(self, request: StreamRequest) -> AsyncIterator[str]:
        self.calls += 1
        return self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise GenerationError(self.error_message)
            if self.delay:
                await asyncio.sleep(self.delay)
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise GenerationError(self.error_message)


class OpenAIChatSource:
    """
    Streams text from an OpenAI-compatible chat completions endpoint.

    The request's input payload is sent as the user message; prompt
    authoring is left to the caller through ``system_prompt``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float | None = None,
        timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: StreamSettings, **kwargs: Any) -> OpenAIChatSource:
        return cls(
            api_key=settings.api_key,
            base_url=settings.openai_base_url,
            model=settings.model,
            **kwargs,
        )

    def build_body(self, request: StreamRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "stream": True,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": json.dumps(request.input_payload, ensure_ascii=False)},
            ],
        }
        if request.mode == "structured":
            body["response_format"] = {"type": "json_object"}
        if self.temperature is not None:
            body["temperature"] = self.temperature
        return body

    def __call__(self, request: StreamRequest) -> AsyncIterator[str]:
        return self._stream(request)

    async def _stream(self, request: StreamRequest) -> AsyncIterator[str]:
        api_key = self.api_key or get_env_api_key()
        if not api_key:
            raise GenerationError("No API key configured for the generation source")

        client = self._client or httpx.AsyncClient()
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json=self.build_body(request),
                timeout=self.timeout,
            ) as response:
                if response.status_code != 200:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise GenerationError(
                        f"Generation request failed: {response.status_code} {detail[:200]}".rstrip()
                    )

                decoder = SSELineDecoder()
                async for text in response.aiter_text():
                    for data in decoder.feed(text):
                        if data == "[DONE]":
                            return
                        try:
                            payload = json.loads(data)
                        except json.JSONDecodeError:
                            log.debug("Skipping unparseable upstream record: %.100s", data)
                            continue

                        choices = payload.get("choices") or []
                        if not choices:
                            continue
                        content = (choices[0].get("delta") or {}).get("content")
                        if content:
                            yield content
                        if choices[0].get("finish_reason"):
                            return
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()
