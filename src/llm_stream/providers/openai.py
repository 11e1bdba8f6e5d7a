"""OpenAI provider — Chat Completions streamed as SSE ending in ``[DONE]``."""

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
    try_json,
)
from llm_stream.types import Framing, LLMMessage, RequestParams, RequestSpec

if TYPE_CHECKING:
    from llm_stream.config import StreamConfig

logger = logging.getLogger(__name__)

VOCABULARY = "openai"

DONE_SENTINEL = "[DONE]"


class OpenAIAdapter:
    """Adapter for the OpenAI Chat Completions streaming API.

    Completion is signalled in three steps: ``finish_reason`` on the last
    content chunk (a hint only), a final chunk with an empty ``choices``
    list and the usage totals (the real completion), then ``[DONE]``.
    """

    name = "openai"
    framing = Framing.LINES

    DEFAULT_MODEL = "gpt-4o"
    BASE_URL = "https://api.openai.com/v1"
    MODEL_PATTERNS = (r"gpt", r"o\d", r"chatgpt", r"computer-use")

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: float = 120.0,
        connect_timeout_seconds: float = 10.0,
    ) -> None:
        self._endpoint = (base_url or self.BASE_URL).rstrip("/") + "/chat/completions"
        self._timeout = timeout_seconds
        self._connect_timeout = connect_timeout_seconds

    @classmethod
    def from_config(cls, config: StreamConfig) -> OpenAIAdapter:
        """Factory method for the provider registry."""
        return cls(
            base_url=config.base_url,
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
        formatted: list[LLMMessage] = []
        if system:
            formatted.append({"role": "system", "content": system})
        formatted.extend(turns)

        body: dict[str, Any] = {
            "model": params.model,
            "messages": formatted,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        return RequestSpec(
            provider=self.name,
            url=self._endpoint,
            headers={
                "Authorization": f"Bearer {credential}",
                "Content-Type": "application/json",
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

        if not line.startswith("data:"):
            return self._parse_unframed(line)

        data = line[5:].strip()
        if data == DONE_SENTINEL:
            logger.debug("openai_done")
            return [RawEvent(VOCABULARY, "done")]

        payload = load_json(data, frame)
        if not isinstance(payload, dict):
            raise ProtocolError("expected a JSON object", frame=frame)
        if payload.get("error"):
            return [self._error(payload)]

        choices = payload.get("choices")
        if not isinstance(choices, list):
            logger.warning("openai_missing_choices | payload=%s", str(payload)[:200])
            return []

        if not choices:
            usage = payload.get("usage")
            if not isinstance(usage, dict):
                logger.debug("openai_empty_choices_without_usage")
                return []
            logger.debug("openai_final_usage | usage=%s", usage)
            return [
                RawEvent(
                    VOCABULARY,
                    "usage",
                    {
                        "prompt_tokens": usage.get("prompt_tokens"),
                        "completion_tokens": usage.get("completion_tokens"),
                    },
                )
            ]

        choice = as_object(choices[0], "choices[0]", frame)
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            logger.warning("openai_missing_delta | choice=%s", str(choice)[:200])
            return []

        events: list[RawEvent] = []
        content = delta.get("content")
        if content:
            events.append(RawEvent(VOCABULARY, "delta", {"content": content}))
        elif delta.get("role") == "assistant":
            logger.debug("openai_role_marker")

        finish_reason = choice.get("finish_reason")
        if finish_reason is not None:
            events.append(RawEvent(VOCABULARY, "finish", {"reason": finish_reason}))
        return events

    def _parse_unframed(self, line: str) -> list[RawEvent]:
        if line.startswith(":"):
            logger.debug("openai_sse_comment | line=%s", line[:200])
            return []
        payload = try_json(line)
        if isinstance(payload, dict) and payload.get("error"):
            return [self._error(payload)]
        logger.warning("openai_unrecognized_line | line=%s", line[:200])
        return []

    @staticmethod
    def _error(payload: dict[str, Any]) -> RawEvent:
        message = error_message(payload, "OpenAI API error")
        logger.error("openai_api_error | message=%s", message)
        return RawEvent(VOCABULARY, "error", {"message": message})
