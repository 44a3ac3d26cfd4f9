"""
Example usage of item-stream: progressive delivery from a replayed token stream
"""
import asyncio
import json
import logging

from item_stream import (
    ConnectionConfig,
    LocalEventSource,
    ProducerSettings,
    StaticSource,
    StreamingClient,
    StreamRequest,
    chunk_text,
    default_registry,
)


DOCUMENT = {
    "data": {
        "potential_causes": [
            {
                "cause_id": "stress",
                "name_localized": "Chronic stress",
                "suggestion_localized": "Schedule short breaks through the day",
                "explanation_localized": "Sustained cortisol release disturbs sleep and digestion.",
                "confidence": 0.8,
            },
            {
                "cause_id": "sleep",
                "name_localized": "Irregular sleep",
                "suggestion_localized": "Keep the same bedtime every night",
                "explanation_localized": "A shifting schedule keeps the body from settling into deep rest.",
            },
        ]
    }
}


async def example_usage():
    """Stream a document in small chunks and watch items arrive one at a time."""

    registry = default_registry()

    # Replay the document 8 characters at a time, like a model would type it
    source = StaticSource(chunk_text(json.dumps(DOCUMENT), 8), delay=0.01)
    events = LocalEventSource(source, registry, ProducerSettings(parse_every=5))

    client = StreamingClient(
        events,
        registry=registry,
        transform=lambda item: f"{item['name_localized']} ({item['cause_id']})",
    )
    unsubscribe = client.subscribe(
        lambda event: print(f"[{event.type}] {client.partial_items}") if event.type == "item" else None
    )

    final = await client.start(StreamRequest(item_type="potential_causes"))
    unsubscribe()

    print(f"State: {client.state.value}, attempts: {client.attempts}")
    print(f"Final causes: {len(final['data']['potential_causes'])}")

    # A second exchange starts from a clean slate
    client.reset()
    print(f"After reset: {client.partial_items}, final={client.final_result}")

    # Connection policies scale with the task
    print(ConnectionConfig.for_profile("extended"))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(example_usage())
