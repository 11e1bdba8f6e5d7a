"""Core data types for llm-stream."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal, TypedDict, Union

if TYPE_CHECKING:
    from llm_stream.exceptions import StreamError


class LLMMessage(TypedDict, total=False):
    """A single message in the conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


@dataclass(frozen=True)
class RequestParams:
    """Generation parameters for one exchange."""

    model: str
    max_tokens: int = 4000
    temperature: float = 0.7
    thinking_budget: int | None = None


class Framing(str, Enum):
    """How a provider frames its streamed response body."""

    LINES = "lines"
    CHUNKED_ARRAY = "chunked_array"


@dataclass(frozen=True)
class RequestSpec:
    """A fully built request, ready to hand to a transport."""

    provider: str
    url: str
    headers: dict[str, str]
    body: str
    timeout_seconds: float = 120.0
    connect_timeout_seconds: float = 10.0
    framing: Framing = Framing.LINES
    method: str = "POST"


# ── Normalized events ───────────────────────────────────────────


class UsageKind(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    THOUGHTS = "thoughts"


@dataclass(frozen=True)
class ContentDelta:
    """A fragment of generated answer text."""

    text: str


@dataclass(frozen=True)
class Thinking:
    """A fragment of reasoning text, kept apart from the answer."""

    text: str


@dataclass(frozen=True)
class UsageUpdate:
    """Absolute token count reported so far (not a delta)."""

    kind: UsageKind
    tokens: int


@dataclass(frozen=True)
class MessageComplete:
    """The model finished its answer; usage is final."""


@dataclass(frozen=True)
class ErrorEvent:
    """A backend or transport failure. Terminal for the exchange."""

    message: str


@dataclass(frozen=True)
class Done:
    """Transport-level end of stream."""


NormalizedEvent = Union[ContentDelta, Thinking, UsageUpdate, MessageComplete, ErrorEvent, Done]


# ── Usage ───────────────────────────────────────────────────────


@dataclass
class UsageCounters:
    """Mutable token accumulator."""

    input: int = 0
    output: int = 0
    thoughts: int = 0

    @property
    def total(self) -> int:
        """Total tokens across all kinds."""
        return self.input + self.output + self.thoughts

    def set(self, kind: UsageKind, tokens: int) -> None:
        setattr(self, kind.value, tokens)

    def add(self, other: UsageCounters) -> None:
        self.input += other.input
        self.output += other.output
        self.thoughts += other.thoughts

    def reset(self) -> None:
        self.input = 0
        self.output = 0
        self.thoughts = 0

    def snapshot(self) -> UsageCounters:
        """Return an independent copy."""
        return UsageCounters(self.input, self.output, self.thoughts)


# ── Exchange ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExchangeHandle:
    """Opaque reference to one in-flight exchange."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ExchangeState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETING = "completing"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExchangeState.DONE, ExchangeState.CANCELLED, ExchangeState.FAILED)


@dataclass(frozen=True)
class ExchangeResult:
    """Terminal outcome of an exchange, delivered exactly once."""

    state: ExchangeState
    usage: UsageCounters
    error: StreamError | None = None

    @property
    def ok(self) -> bool:
        return self.state is ExchangeState.DONE


@dataclass
class StreamResponse:
    """Collected result of a whole exchange."""

    text: str
    usage: UsageCounters
    model: str
    provider: str
    thinking: str = ""
    latency_ms: float = 0.0
    metadata: dict[str, object] = field(default_factory=dict)
