"""Vertex AI provider — Gemini ``streamGenerateContent`` as a chunked JSON array."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from llm_stream.decoding import Frame
from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import RawEvent, as_object, error_message, matches_model, split_system
from llm_stream.types import Framing, LLMMessage, RequestParams, RequestSpec

if TYPE_CHECKING:
    from llm_stream.config import StreamConfig

logger = logging.getLogger(__name__)

VOCABULARY = "vertex"

# finishReason values that do not mean "finished"
_NULL_REASONS = {None, "", "null"}

_ROLES = {"user": "user", "assistant": "model"}


class VertexAdapter:
    """Adapter for Vertex AI Gemini streaming.

    The response body is one JSON array delivered over chunked transfer
    encoding; each element is a response object. A non-null
    ``finishReason`` marks both completion and the end of the stream.
    """

    name = "vertex"
    framing = Framing.CHUNKED_ARRAY

    DEFAULT_MODEL = "gemini-2.5-pro-preview-05-06"
    API_VERSION = "v1"
    MODEL_PATTERNS = (r"gemini", r"text-bison", r"chat-bison", r"codechat-bison")

    def __init__(
        self,
        project_id: str | None = None,
        location: str = "us-central1",
        timeout_seconds: float = 120.0,
        connect_timeout_seconds: float = 10.0,
    ) -> None:
        self._project_id = project_id
        self._location = location
        self._timeout = timeout_seconds
        self._connect_timeout = connect_timeout_seconds

    @classmethod
    def from_config(cls, config: StreamConfig) -> VertexAdapter:
        """Factory method for the provider registry."""
        return cls(
            project_id=config.vertex_project_id,
            location=config.vertex_location,
            timeout_seconds=config.timeout_seconds,
            connect_timeout_seconds=config.connect_timeout_seconds,
        )

    def resolve_model(self, model: str | None) -> str:
        return model if matches_model(model, self.MODEL_PATTERNS) else self.DEFAULT_MODEL

    def endpoint(self, model: str) -> str:
        """Return the streaming endpoint for *model*.

        Raises:
            ValueError: If no project id is configured.
        """
        if not self._project_id:
            msg = "Vertex AI project_id is required. Set LLM_VERTEX_PROJECT_ID."
            raise ValueError(msg)
        return (
            f"https://{self._location}-aiplatform.googleapis.com/{self.API_VERSION}"
            f"/projects/{self._project_id}/locations/{self._location}"
            f"/publishers/google/models/{model}:streamGenerateContent"
        )

    def build_request(
        self,
        messages: Sequence[LLMMessage],
        system_prompt: str | None,
        params: RequestParams,
        *,
        credential: str,
    ) -> RequestSpec:
        system, turns = split_system(messages, system_prompt)
        contents = [
            {"role": _ROLES.get(msg["role"], "user"), "parts": [{"text": msg["content"]}]}
            for msg in turns
        ]
        generation_config: dict[str, Any] = {
            "maxOutputTokens": params.max_tokens,
            "temperature": params.temperature,
        }
        if params.thinking_budget:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": params.thinking_budget,
                "includeThoughts": True,
            }

        body: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        url = self.endpoint(params.model)
        logger.debug("vertex_endpoint | url=%s", url)
        return RequestSpec(
            provider=self.name,
            url=url,
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
        if not isinstance(frame, dict):
            raise ProtocolError("expected a JSON object", frame=frame)

        if frame.get("error"):
            message = error_message(frame, "Vertex AI error")
            logger.error("vertex_api_error | message=%s", message)
            return [RawEvent(VOCABULARY, "error", {"message": message})]

        events: list[RawEvent] = []
        candidates = frame.get("candidates") or []
        if not isinstance(candidates, list):
            raise ProtocolError("expected candidates to be a list", frame=frame)
        candidate = as_object(candidates[0], "candidates[0]", frame) if candidates else {}

        content = as_object(candidate.get("content") or {}, "candidate content", frame)
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise ProtocolError("expected content parts to be a list", frame=frame)
        for part in parts:
            text = part.get("text") if isinstance(part, dict) else None
            if text:
                events.append(
                    RawEvent(VOCABULARY, "text", {"text": text, "thought": bool(part.get("thought"))})
                )
            else:
                logger.debug("vertex_part_dropped | part=%s", str(part)[:200])

        usage = frame.get("usageMetadata")
        if isinstance(usage, dict):
            events.append(
                RawEvent(
                    VOCABULARY,
                    "usage",
                    {
                        "prompt": usage.get("promptTokenCount"),
                        "candidates": usage.get("candidatesTokenCount"),
                        "thoughts": usage.get("thoughtsTokenCount"),
                    },
                )
            )

        reason = candidate.get("finishReason")
        if reason not in _NULL_REASONS:
            logger.debug("vertex_finish | reason=%s", reason)
            events.append(RawEvent(VOCABULARY, "finish", {"reason": reason}))

        if not events:
            logger.warning("vertex_empty_frame | frame=%s", str(frame)[:200])
        return events
