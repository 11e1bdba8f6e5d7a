"""Claude provider — Anthropic Messages API streamed as event-tagged SSE."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from llm_stream.decoding import Frame
from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import (
    RawEvent,
    as_object,
    error_message,
    load_json,
    matches_model,
    split_system,
    token_count,
    try_json,
)
from llm_stream.types import Framing, LLMMessage, RequestParams, RequestSpec

if TYPE_CHECKING:
    from llm_stream.config import StreamConfig

logger = logging.getLogger(__name__)

VOCABULARY = "claude"

# Events that carry nothing we surface
_SILENT_EVENTS = {"content_block_start", "content_block_stop", "message_delta"}


class ClaudeAdapter:
    """Adapter for the Anthropic Messages streaming API.

    ``message_stop`` is both the completion signal and the end of the
    stream; the backend sends no separate sentinel.
    """

    name = "claude"
    framing = Framing.LINES

    DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
    ENDPOINT = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"
    MODEL_PATTERNS = (r"claude",)

    def __init__(
        self,
        endpoint: str | None = None,
        timeout_seconds: float = 120.0,
        connect_timeout_seconds: float = 10.0,
    ) -> None:
        self._endpoint = endpoint or self.ENDPOINT
        self._timeout = timeout_seconds
        self._connect_timeout = connect_timeout_seconds

    @classmethod
    def from_config(cls, config: StreamConfig) -> ClaudeAdapter:
        """Factory method for the provider registry."""
        return cls(
            endpoint=config.base_url,
            timeout_seconds=config.timeout_seconds,
            connect_timeout_seconds=config.connect_timeout_seconds,
        )

    def resolve_model(self, model: str | None) -> str:
        return model if matches_model(model, self.MODEL_PATTERNS) else self.DEFAULT_MODEL

    def build_request(
        self,
        messages: Sequence[LLMMessage],
        system_prompt: str | None,
        params: RequestParams,
        *,
        credential: str,
    ) -> RequestSpec:
        system, turns = split_system(messages, system_prompt)
        body: dict[str, Any] = {
            "model": params.model,
            "messages": turns,
            "max_tokens": params.max_tokens,
            "stream": True,
        }
        if system:
            body["system"] = system
        if params.thinking_budget:
            # extended thinking only accepts the default temperature
            body["thinking"] = {"type": "enabled", "budget_tokens": params.thinking_budget}
        else:
            body["temperature"] = params.temperature

        return RequestSpec(
            provider=self.name,
            url=self._endpoint,
            headers={
                "x-api-key": credential,
                "anthropic-version": self.API_VERSION,
                "content-type": "application/json",
            },
            body=json.dumps(body),
            timeout_seconds=self._timeout,
            connect_timeout_seconds=self._connect_timeout,
            framing=self.framing,
        )

    def parse_frame(self, frame: Frame) -> list[RawEvent]:
        if not isinstance(frame, str):
            raise ProtocolError("expected a text line", frame=frame)
        line = frame.strip()
        if not line:
            return []

        if line.startswith("event:"):
            logger.debug("claude_event | type=%s", line[6:].strip())
            return []

        if not line.startswith("data:"):
            # error bodies arrive as bare JSON, outside SSE framing
            payload = try_json(line)
            if isinstance(payload, dict) and (payload.get("type") == "error" or "error" in payload):
                return [self._error(payload)]
            logger.debug("claude_unframed_line | line=%s", line[:200])
            return []

        payload = load_json(line[5:].strip(), frame)
        if not isinstance(payload, dict):
            raise ProtocolError("expected a JSON object", frame=frame)
        return self._parse_payload(payload, frame)

    def _parse_payload(self, payload: dict[str, Any], frame: Frame) -> list[RawEvent]:
        kind = payload.get("type")
        if kind == "error":
            return [self._error(payload)]

        events: list[RawEvent] = []
        if kind == "message_start":
            message = as_object(payload.get("message") or {}, "message", frame)
            usage = as_object(message.get("usage") or {}, "message.usage", frame)
            if usage.get("input_tokens") is not None:
                tokens = token_count(usage["input_tokens"], frame)
                events.append(RawEvent(VOCABULARY, "message_start", {"input_tokens": tokens}))
        elif kind == "content_block_delta":
            events.extend(self._parse_delta(as_object(payload.get("delta") or {}, "delta", frame)))
        elif kind == "ping":
            logger.debug("claude_ping")
        elif kind in _SILENT_EVENTS or kind == "message_stop":
            pass
        else:
            logger.warning("claude_unknown_event | type=%s payload=%s", kind, str(payload)[:200])

        usage = payload.get("usage")
        if isinstance(usage, dict) and usage.get("output_tokens") is not None:
            tokens = token_count(usage["output_tokens"], frame)
            events.append(RawEvent(VOCABULARY, "usage", {"output_tokens": tokens}))

        if kind == "message_stop":
            events.append(RawEvent(VOCABULARY, "message_stop"))
        return events

    @staticmethod
    def _parse_delta(delta: dict[str, Any]) -> list[RawEvent]:
        delta_type = delta.get("type")
        if delta_type == "text_delta" or (delta_type is None and "text" in delta):
            return [RawEvent(VOCABULARY, "text_delta", {"text": delta.get("text") or ""})]
        if delta_type == "thinking_delta":
            return [RawEvent(VOCABULARY, "thinking_delta", {"thinking": delta.get("thinking") or ""})]
        if delta_type in ("signature_delta", "input_json_delta"):
            logger.debug("claude_delta_dropped | type=%s", delta_type)
            return []
        logger.warning("claude_unknown_delta | type=%s", delta_type)
        return []

    @staticmethod
    def _error(payload: dict[str, Any]) -> RawEvent:
        message = error_message(payload, "Claude API error")
        logger.error("claude_api_error | message=%s", message)
        return RawEvent(VOCABULARY, "error", {"message": message})
