"""Provider adapter protocol — the contract every backend adapter must satisfy."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from llm_stream.decoding import Frame
from llm_stream.exceptions import ProtocolError
from llm_stream.types import Framing, LLMMessage, RequestParams, RequestSpec


@dataclass(frozen=True)
class RawEvent:
    """A provider-native event extracted from one frame.

    ``vocabulary`` names the event set ``type`` belongs to, so the
    normalizer knows how to read it.
    """

    vocabulary: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that all provider adapters must implement.

    Adapters are stateless with respect to the network: they build requests
    and interpret frames, nothing else.
    """

    name: str
    framing: Framing

    def resolve_model(self, model: str | None) -> str:
        """Return *model* if it belongs to this provider, else the default."""
        ...

    def build_request(
        self,
        messages: Sequence[LLMMessage],
        system_prompt: str | None,
        params: RequestParams,
        *,
        credential: str,
    ) -> RequestSpec:
        """Build the request for one exchange.

        Args:
            messages: Conversation messages.
            system_prompt: System prompt. ``None`` falls back to the first
                system message in *messages*.
            params: Generation parameters.
            credential: Ready-to-use secret (API key or access token).
        """
        ...

    def parse_frame(self, frame: Frame) -> list[RawEvent]:
        """Interpret one decoded frame.

        Raises:
            ProtocolError: If the frame cannot be parsed.
        """
        ...


def split_system(
    messages: Sequence[LLMMessage],
    system_prompt: str | None,
) -> tuple[str | None, list[LLMMessage]]:
    """Separate the system prompt from the conversation turns.

    An explicit *system_prompt* wins over a system message in *messages*.
    Message bodies lose trailing whitespace.
    """
    system = system_prompt
    turns: list[LLMMessage] = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "").rstrip()
        if role == "system":
            if system is None:
                system = content
            continue
        turns.append({"role": role, "content": content})
    return system, turns


def matches_model(model: str | None, patterns: Sequence[str]) -> bool:
    """True if *model* matches any of the regex *patterns* (anchored at start)."""
    if not model:
        return False
    return any(re.match(pattern, model) for pattern in patterns)


def load_json(text: str, frame: Frame) -> Any:
    """Parse JSON text from a frame, raising ``ProtocolError`` on failure."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON ({exc.msg})", frame=frame) from exc


def try_json(text: str) -> Any:
    """Parse JSON text, or return ``None`` if it is not JSON."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def error_message(payload: dict[str, Any], default: str) -> str:
    """Extract ``error.message`` from an error payload."""
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return default


def as_object(value: Any, what: str, frame: Frame) -> dict[str, Any]:
    """Return *value* if it is a JSON object, else raise ``ProtocolError``."""
    if not isinstance(value, dict):
        raise ProtocolError(f"expected {what} to be an object, got {type(value).__name__}", frame=frame)
    return value


def token_count(value: Any, frame: Frame | None = None) -> int:
    """Convert a reported token count, raising ``ProtocolError`` if it is not a number."""
    if isinstance(value, bool):
        raise ProtocolError(f"invalid token count {value!r}", frame=frame)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"invalid token count {value!r}", frame=frame) from exc
