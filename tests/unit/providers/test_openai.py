"""Tests for OpenAIAdapter."""

from __future__ import annotations

import json

import pytest

from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import RawEvent
from llm_stream.providers.openai import OpenAIAdapter
from llm_stream.types import RequestParams


def _chunk(delta: dict | None = None, finish_reason: str | None = None) -> str:
    choice = {"index": 0, "delta": delta or {}, "finish_reason": finish_reason}
    return "data: " + json.dumps({"id": "chatcmpl-1", "choices": [choice]})


@pytest.mark.unit
class TestOpenAIRequest:
    def test_builds_chat_completions_request(self, openai_adapter: OpenAIAdapter) -> None:
        request = openai_adapter.build_request(
            [{"role": "user", "content": "Hi"}],
            "You are helpful.",
            RequestParams(model="gpt-4o-mini", max_tokens=100, temperature=0.0),
            credential="sk-test",
        )
        body = json.loads(request.body)

        assert request.url == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["messages"] == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "Hi"},
        ]
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        assert body["temperature"] == 0.0
        assert body["max_tokens"] == 100

    def test_base_url_override(self) -> None:
        adapter = OpenAIAdapter(base_url="http://localhost:8080/v1/")
        request = adapter.build_request(
            [{"role": "user", "content": "Hi"}], None, RequestParams(model="gpt-4o"), credential="k"
        )
        assert request.url == "http://localhost:8080/v1/chat/completions"

    @pytest.mark.parametrize(
        ("requested", "resolved"),
        [
            ("gpt-4.1", "gpt-4.1"),
            ("o3-mini", "o3-mini"),
            ("claude-3-opus", OpenAIAdapter.DEFAULT_MODEL),
            (None, OpenAIAdapter.DEFAULT_MODEL),
        ],
    )
    def test_resolve_model(self, openai_adapter: OpenAIAdapter, requested, resolved) -> None:  # type: ignore[no-untyped-def]
        assert openai_adapter.resolve_model(requested) == resolved


@pytest.mark.unit
class TestOpenAIParse:
    def test_content_delta(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame(_chunk({"content": "Hel"})) == [
            RawEvent("openai", "delta", {"content": "Hel"})
        ]

    def test_role_marker_has_no_events(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame(_chunk({"role": "assistant", "content": ""})) == []

    def test_finish_reason_is_reported(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame(_chunk({}, finish_reason="stop")) == [
            RawEvent("openai", "finish", {"reason": "stop"})
        ]

    def test_usage_chunk_with_empty_choices(self, openai_adapter: OpenAIAdapter) -> None:
        line = "data: " + json.dumps(
            {"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 4, "total_tokens": 13}}
        )
        assert openai_adapter.parse_frame(line) == [
            RawEvent("openai", "usage", {"prompt_tokens": 9, "completion_tokens": 4})
        ]

    def test_done_sentinel(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame("data: [DONE]") == [RawEvent("openai", "done")]

    def test_error_payload(self, openai_adapter: OpenAIAdapter) -> None:
        line = "data: " + json.dumps({"error": {"message": "Rate limit reached"}})
        assert openai_adapter.parse_frame(line) == [
            RawEvent("openai", "error", {"message": "Rate limit reached"})
        ]

    def test_bare_json_error_line(self, openai_adapter: OpenAIAdapter) -> None:
        line = json.dumps({"error": {"message": "Incorrect API key provided"}})
        assert openai_adapter.parse_frame(line) == [
            RawEvent("openai", "error", {"message": "Incorrect API key provided"})
        ]

    @pytest.mark.parametrize("line", ["", ": keep-alive", "not json at all"])
    def test_ignored_lines(self, openai_adapter: OpenAIAdapter, line: str) -> None:
        assert openai_adapter.parse_frame(line) == []

    def test_missing_choices_is_ignored(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame('data: {"id": "x"}') == []

    def test_malformed_json_raises(self, openai_adapter: OpenAIAdapter) -> None:
        with pytest.raises(ProtocolError):
            openai_adapter.parse_frame('data: {"choices": [')

    def test_non_object_choice_raises(self, openai_adapter: OpenAIAdapter) -> None:
        with pytest.raises(ProtocolError, match=r"choices\[0\]"):
            openai_adapter.parse_frame('data: {"choices": ["x"]}')

    def test_non_object_delta_is_skipped(self, openai_adapter: OpenAIAdapter) -> None:
        assert openai_adapter.parse_frame('data: {"choices": [{"delta": "oops"}]}') == []
