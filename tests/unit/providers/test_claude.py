"""Tests for ClaudeAdapter."""

from __future__ import annotations

import json

import pytest

from llm_stream.config import StreamConfig
from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import ProviderAdapter, RawEvent
from llm_stream.providers.claude import ClaudeAdapter
from llm_stream.types import Framing, RequestParams


def _data(payload: dict) -> str:
    return "data: " + json.dumps(payload)


@pytest.mark.unit
class TestClaudeRequest:
    def test_satisfies_protocol(self, claude_adapter: ClaudeAdapter) -> None:
        assert isinstance(claude_adapter, ProviderAdapter)
        assert claude_adapter.framing is Framing.LINES

    def test_builds_messages_request(self, claude_adapter: ClaudeAdapter) -> None:
        request = claude_adapter.build_request(
            [
                {"role": "system", "content": "Be terse."},
                {"role": "user", "content": "Hi  \n"},
                {"role": "assistant", "content": "Hello"},
            ],
            None,
            RequestParams(model="claude-3-5-sonnet-20241022", max_tokens=256, temperature=0.2),
            credential="sk-ant",
        )
        body = json.loads(request.body)

        assert request.url == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-ant"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert body["model"] == "claude-3-5-sonnet-20241022"
        assert body["system"] == "Be terse."
        assert body["messages"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]
        assert body["stream"] is True
        assert body["max_tokens"] == 256
        assert body["temperature"] == 0.2

    def test_explicit_system_prompt_wins(self, claude_adapter: ClaudeAdapter) -> None:
        request = claude_adapter.build_request(
            [{"role": "system", "content": "inline"}, {"role": "user", "content": "q"}],
            "explicit",
            RequestParams(model="claude-3-7-sonnet-20250219"),
            credential="k",
        )
        assert json.loads(request.body)["system"] == "explicit"

    def test_no_system_key_without_prompt(self, claude_adapter: ClaudeAdapter) -> None:
        request = claude_adapter.build_request(
            [{"role": "user", "content": "q"}],
            None,
            RequestParams(model="claude-3-7-sonnet-20250219"),
            credential="k",
        )
        assert "system" not in json.loads(request.body)

    def test_thinking_budget_replaces_temperature(self, claude_adapter: ClaudeAdapter) -> None:
        request = claude_adapter.build_request(
            [{"role": "user", "content": "q"}],
            None,
            RequestParams(model="claude-3-7-sonnet-20250219", thinking_budget=2048),
            credential="k",
        )
        body = json.loads(request.body)
        assert body["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert "temperature" not in body

    def test_config_overrides(self) -> None:
        config = StreamConfig(
            api_key="k",  # type: ignore[arg-type]
            base_url="http://localhost:9000/v1/messages",
            timeout_seconds=30,
            connect_timeout_seconds=2,
        )
        request = ClaudeAdapter.from_config(config).build_request(
            [{"role": "user", "content": "q"}], None, RequestParams(model="claude-3"), credential="k"
        )
        assert request.url == "http://localhost:9000/v1/messages"
        assert request.timeout_seconds == 30
        assert request.connect_timeout_seconds == 2

    @pytest.mark.parametrize(
        ("requested", "resolved"),
        [
            ("claude-3-opus-20240229", "claude-3-opus-20240229"),
            ("gpt-4o", ClaudeAdapter.DEFAULT_MODEL),
            (None, ClaudeAdapter.DEFAULT_MODEL),
        ],
    )
    def test_resolve_model(self, claude_adapter: ClaudeAdapter, requested, resolved) -> None:  # type: ignore[no-untyped-def]
        assert claude_adapter.resolve_model(requested) == resolved


@pytest.mark.unit
class TestClaudeParse:
    def test_message_start_reports_input_tokens(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data({"type": "message_start", "message": {"usage": {"input_tokens": 12, "output_tokens": 1}}})
        assert claude_adapter.parse_frame(line) == [
            RawEvent("claude", "message_start", {"input_tokens": 12})
        ]

    def test_text_delta(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}})
        assert claude_adapter.parse_frame(line) == [RawEvent("claude", "text_delta", {"text": "Hi"})]

    def test_thinking_delta(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data(
            {"type": "content_block_delta", "delta": {"type": "thinking_delta", "thinking": "hmm"}}
        )
        assert claude_adapter.parse_frame(line) == [
            RawEvent("claude", "thinking_delta", {"thinking": "hmm"})
        ]

    def test_signature_delta_dropped(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data(
            {"type": "content_block_delta", "delta": {"type": "signature_delta", "signature": "x"}}
        )
        assert claude_adapter.parse_frame(line) == []

    def test_message_delta_usage(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data({"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 7}})
        assert claude_adapter.parse_frame(line) == [RawEvent("claude", "usage", {"output_tokens": 7})]

    def test_message_stop(self, claude_adapter: ClaudeAdapter) -> None:
        assert claude_adapter.parse_frame(_data({"type": "message_stop"})) == [
            RawEvent("claude", "message_stop")
        ]

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "event: content_block_delta",
            _data({"type": "ping"}),
            _data({"type": "content_block_start", "index": 0}),
            _data({"type": "content_block_stop", "index": 0}),
        ],
    )
    def test_lines_without_events(self, claude_adapter: ClaudeAdapter, line: str) -> None:
        assert claude_adapter.parse_frame(line) == []

    def test_sse_error_event(self, claude_adapter: ClaudeAdapter) -> None:
        line = _data({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        assert claude_adapter.parse_frame(line) == [RawEvent("claude", "error", {"message": "Overloaded"})]

    def test_bare_json_error_body(self, claude_adapter: ClaudeAdapter) -> None:
        line = json.dumps({"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}})
        assert claude_adapter.parse_frame(line) == [
            RawEvent("claude", "error", {"message": "invalid x-api-key"})
        ]

    def test_error_without_message_uses_default(self, claude_adapter: ClaudeAdapter) -> None:
        events = claude_adapter.parse_frame(_data({"type": "error"}))
        assert events == [RawEvent("claude", "error", {"message": "Claude API error"})]

    def test_malformed_data_line_raises(self, claude_adapter: ClaudeAdapter) -> None:
        with pytest.raises(ProtocolError, match="invalid JSON"):
            claude_adapter.parse_frame("data: {not json")

    def test_rejects_object_frames(self, claude_adapter: ClaudeAdapter) -> None:
        with pytest.raises(ProtocolError):
            claude_adapter.parse_frame({"type": "message_stop"})

    @pytest.mark.parametrize(
        "payload",
        [
            '{"type": "content_block_delta", "delta": "oops"}',
            '{"type": "message_start", "message": ["oops"]}',
            '{"type": "message_start", "message": {"usage": {"input_tokens": "n/a"}}}',
            '{"type": "message_delta", "usage": {"output_tokens": "n/a"}}',
        ],
    )
    def test_wrong_shape_raises(self, claude_adapter: ClaudeAdapter, payload: str) -> None:
        with pytest.raises(ProtocolError):
            claude_adapter.parse_frame(f"data: {payload}")
