"""
item-stream: progressive delivery of complete items from LLM JSON token streams.
"""

import logging

__version__ = "0.1.0"

from item_stream.types import (
    AccumulationState,
    ArrayPath,
    CompleteEvent,
    CompletenessRule,
    DeliveryRecord,
    ErrorEvent,
    ExchangeState,
    ItemEvent,
    StreamEvent,
    StreamMode,
    StreamRequest,
    StreamStats,
    TerminalEvent,
    TextEvent,
    TimeoutProfile,
)
from item_stream.errors import (
    GenerationError,
    ItemStreamError,
    StreamTimeoutError,
    StreamTransportError,
    UnknownItemTypeError,
)
from item_stream.config import (
    TIMEOUT_PROFILES_MS,
    ConnectionConfig,
    ProducerSettings,
    StreamSettings,
    get_env_api_key,
)
from item_stream.registry import (
    DEFAULT_RULES,
    CompletenessRegistry,
    default_registry,
)
from item_stream.utils.json_parse import (
    PartialArray,
    PartialObject,
    PartialString,
    is_partial,
    parse_partial_json,
    to_plain,
)
from item_stream.completeness import (
    clean_item,
    find_complete_items,
    is_item_complete,
)
from item_stream.tracker import EmissionTracker
from item_stream.event_stream import (
    EventStream,
    StreamEventChannel,
)
from item_stream.wire import (
    SSELineDecoder,
    decode_event,
    encode_event,
)
from item_stream.sources import (
    GenerationSource,
    OpenAIChatSource,
    StaticSource,
    chunk_text,
)
from item_stream.producer import (
    ProducerLoop,
    resolve_rule,
    start_producer,
)
from item_stream.consumer import StreamReconstructor
from item_stream.transports import (
    EventSource,
    HttpEventSource,
    LocalEventSource,
)
from item_stream.connection import (
    ExchangeOutcome,
    StreamingClient,
    run_parallel,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    # Types
    "AccumulationState",
    "ArrayPath",
    "CompleteEvent",
    "CompletenessRule",
    "DeliveryRecord",
    "ErrorEvent",
    "ExchangeState",
    "ItemEvent",
    "StreamEvent",
    "StreamMode",
    "StreamRequest",
    "StreamStats",
    "TerminalEvent",
    "TextEvent",
    "TimeoutProfile",
    # Errors
    "GenerationError",
    "ItemStreamError",
    "StreamTimeoutError",
    "StreamTransportError",
    "UnknownItemTypeError",
    # Configuration
    "TIMEOUT_PROFILES_MS",
    "ConnectionConfig",
    "ProducerSettings",
    "StreamSettings",
    "get_env_api_key",
    # Registry
    "DEFAULT_RULES",
    "CompletenessRegistry",
    "default_registry",
    # Parsing
    "PartialArray",
    "PartialObject",
    "PartialString",
    "is_partial",
    "parse_partial_json",
    "to_plain",
    # Detection and tracking
    "clean_item",
    "find_complete_items",
    "is_item_complete",
    "EmissionTracker",
    # Event Stream
    "EventStream",
    "StreamEventChannel",
    # Wire format
    "SSELineDecoder",
    "decode_event",
    "encode_event",
    # Sources
    "GenerationSource",
    "OpenAIChatSource",
    "StaticSource",
    "chunk_text",
    # Producer
    "ProducerLoop",
    "resolve_rule",
    "start_producer",
    # Consumer
    "StreamReconstructor",
    "EventSource",
    "HttpEventSource",
    "LocalEventSource",
    "ExchangeOutcome",
    "StreamingClient",
    "run_parallel",
]
