"""
HTTP surface for the producer side.

``POST /api/stream`` starts an exchange and answers with a
``text/event-stream`` body of ``data:`` records; ``GET /api/stream`` is a
health check.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from item_stream import __version__
from item_stream.config import StreamSettings
from item_stream.errors import UnknownItemTypeError
from item_stream.producer import start_producer
from item_stream.registry import CompletenessRegistry, default_registry
from item_stream.sources import GenerationSource, OpenAIChatSource
from item_stream.types import StreamRequest
from item_stream.wire import encode_event

log = logging.getLogger(__name__)

SERVICE_NAME = "item-stream"

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error(message: str, trace_id: str, status_code: int = 400, **extra: object) -> JSONResponse:
    return JSONResponse({"error": message, "trace_id": trace_id, **extra}, status_code=status_code)


def create_app(
    source: GenerationSource,
    registry: CompletenessRegistry | None = None,
    settings: StreamSettings | None = None,
) -> FastAPI:
    """Build the streaming app around a generation source."""
    registry = registry or default_registry()
    settings = settings or StreamSettings()

    app = FastAPI(title=SERVICE_NAME, version=__version__)
    app.state.registry = registry
    app.state.settings = settings

    @app.get("/api/stream")
    async def health() -> dict[str, object]:
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": __version__,
            "configured": bool(settings.api_key),
            "item_types": registry.names(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/api/stream")
    async def stream(request: Request):
        trace_id = uuid.uuid4().hex[:12]

        try:
            body = await request.json()
        except ValueError:
            return _error("Request body must be a JSON object", trace_id)

        try:
            stream_request = StreamRequest.model_validate(body)
        except ValidationError as e:
            log.info("[%s] Rejected stream request: %d validation error(s)", trace_id, e.error_count())
            return _error(
                "Invalid stream request",
                trace_id,
                details=json.loads(e.json(include_url=False)),
            )

        try:
            channel, task = start_producer(stream_request, source, registry, settings.producer)
        except UnknownItemTypeError as e:
            log.info("[%s] %s", trace_id, e)
            return _error(str(e), trace_id)

        log.info(
            "[%s] Streaming %s (%s) feature=%s step=%s",
            trace_id,
            stream_request.item_type,
            stream_request.mode,
            stream_request.feature,
            stream_request.step,
        )

        async def events() -> AsyncIterator[str]:
            try:
                async for event in channel:
                    yield encode_event(event)
            finally:
                # Client gone or stream finished; later producer writes are no-ops
                channel.close()
                if not task.done():
                    task.cancel()
                    log.info("[%s] Client disconnected; producer cancelled", trace_id)

        return StreamingResponse(events(), media_type="text/event-stream", headers=STREAM_HEADERS)

    return app


def main() -> None:
    """Serve the app with an OpenAI-compatible source configured from the environment."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = StreamSettings.from_env()
    if not settings.api_key:
        log.warning("No API key configured; generation requests will fail")
    app = create_app(OpenAIChatSource.from_settings(settings), default_registry(), settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
