"""Collapse provider-native raw events into the normalized event set."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import RawEvent, token_count
from llm_stream.types import (
    ContentDelta,
    Done,
    ErrorEvent,
    MessageComplete,
    NormalizedEvent,
    Thinking,
    UsageKind,
    UsageUpdate,
)

logger = logging.getLogger(__name__)

_Mapper = Callable[[dict[str, Any]], list[NormalizedEvent]]


def _text(data: dict[str, Any], key: str, kind: type[ContentDelta] | type[Thinking]) -> list[NormalizedEvent]:
    text = data.get(key) or ""
    if not isinstance(text, str):
        raise ProtocolError(f"expected {key} to be a string, got {type(text).__name__}")
    return [kind(text)] if text else []


def _usage(data: dict[str, Any], fields: dict[str, UsageKind]) -> list[NormalizedEvent]:
    return [
        UsageUpdate(kind, token_count(data[key]))
        for key, kind in fields.items()
        if data.get(key) is not None
    ]


def _vertex_text(data: dict[str, Any]) -> list[NormalizedEvent]:
    kind = Thinking if data.get("thought") else ContentDelta
    return _text(data, "text", kind)


def _error(data: dict[str, Any]) -> list[NormalizedEvent]:
    return [ErrorEvent(str(data.get("message") or "Unknown backend error"))]


def _soft_hint(data: dict[str, Any]) -> list[NormalizedEvent]:
    logger.debug("finish_hint | reason=%s", data.get("reason"))
    return []


_VOCABULARIES: dict[str, dict[str, _Mapper]] = {
    "claude": {
        "message_start": lambda d: _usage(d, {"input_tokens": UsageKind.INPUT}),
        "text_delta": lambda d: _text(d, "text", ContentDelta),
        "thinking_delta": lambda d: _text(d, "thinking", Thinking),
        "usage": lambda d: _usage(d, {"output_tokens": UsageKind.OUTPUT}),
        # completion and end of stream share one event
        "message_stop": lambda d: [MessageComplete(), Done()],
        "error": _error,
    },
    "openai": {
        "delta": lambda d: _text(d, "content", ContentDelta),
        "finish": _soft_hint,
        "usage": lambda d: [
            *_usage(d, {"prompt_tokens": UsageKind.INPUT, "completion_tokens": UsageKind.OUTPUT}),
            MessageComplete(),
        ],
        "done": lambda d: [Done()],
        "error": _error,
    },
    "vertex": {
        "text": _vertex_text,
        "usage": lambda d: _usage(
            d,
            {"prompt": UsageKind.INPUT, "candidates": UsageKind.OUTPUT, "thoughts": UsageKind.THOUGHTS},
        ),
        "finish": lambda d: [MessageComplete(), Done()],
        "error": _error,
    },
}


class EventNormalizer:
    """Map raw events to normalized events for one exchange.

    The mapping itself is stateless; the normalizer only remembers whether
    an error has been seen. After an error every raw event is discarded.
    """

    def __init__(self) -> None:
        self._failed = False

    @property
    def failed(self) -> bool:
        return self._failed

    def normalize(self, raw: RawEvent) -> list[NormalizedEvent]:
        """Return the normalized events implied by *raw*.

        Raises:
            ProtocolError: If *raw* carries a malformed value.
        """
        if self._failed:
            logger.debug("event_after_error_discarded | vocabulary=%s type=%s", raw.vocabulary, raw.type)
            return []

        mapper = _VOCABULARIES.get(raw.vocabulary, {}).get(raw.type)
        if mapper is None:
            logger.warning("unknown_raw_event | vocabulary=%s type=%s", raw.vocabulary, raw.type)
            return []

        events = mapper(raw.data)
        for index, event in enumerate(events):
            if isinstance(event, ErrorEvent):
                self._failed = True
                return events[: index + 1]
        return events
