"""llm-stream — streaming chat completions from Claude, OpenAI and Vertex AI.

Usage:
    from llm_stream import ContentDelta, StreamClient

    async with StreamClient() as client:  # reads LLM_* env vars
        async for event in client.stream(messages):
            if isinstance(event, ContentDelta):
                print(event.text, end="")
"""

from __future__ import annotations

from llm_stream.client import StreamClient
from llm_stream.config import StreamConfig
from llm_stream.cost import UsageCost, calculate_cost, register_pricing
from llm_stream.decoding import ChunkDecoder, ChunkedArrayDecoder, LineDecoder, make_decoder
from llm_stream.exceptions import (
    BackendError,
    CallbackError,
    CurlNotFoundError,
    ProtocolError,
    ProviderInitError,
    ProviderNotFoundError,
    RequestCancelledError,
    StreamError,
    TransportError,
    TransportFailure,
)
from llm_stream.lifecycle import RequestLifecycle, StreamCallbacks
from llm_stream.normalizer import EventNormalizer
from llm_stream.providers.base import ProviderAdapter, RawEvent
from llm_stream.registry import build_provider, list_providers, register_provider
from llm_stream.transport import CurlTransport, Transport
from llm_stream.types import (
    ContentDelta,
    Done,
    ErrorEvent,
    ExchangeHandle,
    ExchangeResult,
    ExchangeState,
    Framing,
    LLMMessage,
    MessageComplete,
    NormalizedEvent,
    RequestParams,
    RequestSpec,
    StreamResponse,
    Thinking,
    UsageCounters,
    UsageKind,
    UsageUpdate,
)
from llm_stream.usage import UsageAggregator

__all__ = [
    # Core
    "StreamClient",
    "StreamConfig",
    "StreamCallbacks",
    "RequestLifecycle",
    # Types
    "LLMMessage",
    "RequestParams",
    "RequestSpec",
    "Framing",
    "StreamResponse",
    "ExchangeHandle",
    "ExchangeResult",
    "ExchangeState",
    "UsageCounters",
    "UsageKind",
    # Events
    "NormalizedEvent",
    "ContentDelta",
    "Thinking",
    "UsageUpdate",
    "MessageComplete",
    "ErrorEvent",
    "Done",
    # Pipeline
    "ChunkDecoder",
    "LineDecoder",
    "ChunkedArrayDecoder",
    "make_decoder",
    "EventNormalizer",
    "UsageAggregator",
    "Transport",
    "CurlTransport",
    # Provider
    "ProviderAdapter",
    "RawEvent",
    "register_provider",
    "build_provider",
    "list_providers",
    # Cost
    "UsageCost",
    "calculate_cost",
    "register_pricing",
    # Exceptions
    "StreamError",
    "ProviderNotFoundError",
    "ProviderInitError",
    "TransportError",
    "TransportFailure",
    "CurlNotFoundError",
    "ProtocolError",
    "BackendError",
    "RequestCancelledError",
    "CallbackError",
]
