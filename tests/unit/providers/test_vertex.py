"""Tests for VertexAdapter."""

from __future__ import annotations

import json

import pytest

from llm_stream.config import StreamConfig
from llm_stream.exceptions import ProtocolError
from llm_stream.providers.base import RawEvent
from llm_stream.providers.vertex import VertexAdapter
from llm_stream.types import Framing, RequestParams


def _frame(parts: list[dict] | None = None, finish: str | None = None, usage: dict | None = None) -> dict:
    candidate: dict = {"content": {"role": "model", "parts": parts or []}}
    if finish is not None:
        candidate["finishReason"] = finish
    frame: dict = {"candidates": [candidate]}
    if usage is not None:
        frame["usageMetadata"] = usage
    return frame


@pytest.mark.unit
class TestVertexRequest:
    def test_uses_chunked_array_framing(self, vertex_adapter: VertexAdapter) -> None:
        assert vertex_adapter.framing is Framing.CHUNKED_ARRAY

    def test_builds_stream_generate_content_request(self, vertex_adapter: VertexAdapter) -> None:
        request = vertex_adapter.build_request(
            [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
                {"role": "user", "content": "Bye"},
            ],
            None,
            RequestParams(model="gemini-2.0-flash", max_tokens=500, temperature=0.3),
            credential="ya29.token",
        )
        body = json.loads(request.body)

        assert request.url == (
            "https://us-central1-aiplatform.googleapis.com/v1/projects/test-project"
            "/locations/us-central1/publishers/google/models/gemini-2.0-flash:streamGenerateContent"
        )
        assert request.headers["Authorization"] == "Bearer ya29.token"
        assert request.framing is Framing.CHUNKED_ARRAY
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][0]["parts"] == [{"text": "Hi"}]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["generationConfig"] == {"maxOutputTokens": 500, "temperature": 0.3}

    def test_thinking_config(self, vertex_adapter: VertexAdapter) -> None:
        request = vertex_adapter.build_request(
            [{"role": "user", "content": "Hi"}],
            None,
            RequestParams(model="gemini-2.5-pro", thinking_budget=4096),
            credential="t",
        )
        config = json.loads(request.body)["generationConfig"]
        assert config["thinkingConfig"] == {"thinkingBudget": 4096, "includeThoughts": True}

    def test_location_from_config(self) -> None:
        config = StreamConfig(
            provider="vertex",
            api_key="t",  # type: ignore[arg-type]
            vertex_project_id="proj",
            vertex_location="europe-west4",
        )
        url = VertexAdapter.from_config(config).endpoint("gemini-2.5-flash")
        assert url.startswith("https://europe-west4-aiplatform.googleapis.com/v1/projects/proj/locations/europe-west4/")

    def test_missing_project_raises(self) -> None:
        adapter = VertexAdapter()
        with pytest.raises(ValueError, match="project_id"):
            adapter.build_request(
                [{"role": "user", "content": "Hi"}], None, RequestParams(model="gemini-2.5-pro"), credential="t"
            )

    def test_resolve_model(self, vertex_adapter: VertexAdapter) -> None:
        assert vertex_adapter.resolve_model("gemini-2.0-flash") == "gemini-2.0-flash"
        assert vertex_adapter.resolve_model("gpt-4o") == VertexAdapter.DEFAULT_MODEL
        assert vertex_adapter.resolve_model("text-embedding-004") == VertexAdapter.DEFAULT_MODEL


@pytest.mark.unit
class TestVertexParse:
    def test_text_part(self, vertex_adapter: VertexAdapter) -> None:
        assert vertex_adapter.parse_frame(_frame([{"text": "Hi"}])) == [
            RawEvent("vertex", "text", {"text": "Hi", "thought": False})
        ]

    def test_thought_part(self, vertex_adapter: VertexAdapter) -> None:
        assert vertex_adapter.parse_frame(_frame([{"text": "pondering", "thought": True}])) == [
            RawEvent("vertex", "text", {"text": "pondering", "thought": True})
        ]

    def test_final_frame_with_usage_and_finish(self, vertex_adapter: VertexAdapter) -> None:
        frame = _frame(
            [{"text": "!"}],
            finish="STOP",
            usage={"promptTokenCount": 5, "candidatesTokenCount": 3, "thoughtsTokenCount": 11},
        )
        assert vertex_adapter.parse_frame(frame) == [
            RawEvent("vertex", "text", {"text": "!", "thought": False}),
            RawEvent("vertex", "usage", {"prompt": 5, "candidates": 3, "thoughts": 11}),
            RawEvent("vertex", "finish", {"reason": "STOP"}),
        ]

    def test_null_finish_reason_is_not_completion(self, vertex_adapter: VertexAdapter) -> None:
        events = vertex_adapter.parse_frame(_frame([{"text": "a"}], finish="null"))
        assert [e.type for e in events] == ["text"]

    def test_error_object(self, vertex_adapter: VertexAdapter) -> None:
        frame = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        assert vertex_adapter.parse_frame(frame) == [
            RawEvent("vertex", "error", {"message": "Quota exceeded"})
        ]

    def test_empty_frame(self, vertex_adapter: VertexAdapter) -> None:
        assert vertex_adapter.parse_frame({"modelVersion": "gemini-2.5-pro"}) == []

    def test_rejects_text_frames(self, vertex_adapter: VertexAdapter) -> None:
        with pytest.raises(ProtocolError):
            vertex_adapter.parse_frame("data: {}")

    @pytest.mark.parametrize(
        "frame",
        [
            {"candidates": "oops"},
            {"candidates": ["oops"]},
            {"candidates": [{"content": "oops"}]},
            {"candidates": [{"content": {"parts": "oops"}}]},
        ],
    )
    def test_wrong_shape_raises(self, vertex_adapter: VertexAdapter, frame: dict) -> None:
        with pytest.raises(ProtocolError):
            vertex_adapter.parse_frame(frame)
