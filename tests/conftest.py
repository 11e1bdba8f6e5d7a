"""Shared test fixtures for llm-stream."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from dataclasses import dataclass, field

import pytest

from llm_stream.config import StreamConfig
from llm_stream.lifecycle import RequestLifecycle, StreamCallbacks
from llm_stream.providers.base import ProviderAdapter
from llm_stream.providers.claude import ClaudeAdapter
from llm_stream.providers.openai import OpenAIAdapter
from llm_stream.providers.vertex import VertexAdapter
from llm_stream.testing import FakeTransport
from llm_stream.types import (
    ContentDelta,
    ExchangeResult,
    LLMMessage,
    NormalizedEvent,
    RequestParams,
    RequestSpec,
)

MESSAGES: list[LLMMessage] = [{"role": "user", "content": "Hello"}]


@dataclass
class Recorder:
    """Collects everything a lifecycle reports through its callbacks."""

    events: list[NormalizedEvent] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    results: list[ExchangeResult] = field(default_factory=list)
    cleanups: int = 0

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_event=self.events.append,
            on_stderr=self.stderr.append,
            on_finish=self.results.append,
            on_cleanup=self._cleanup,
        )

    def _cleanup(self) -> None:
        self.cleanups += 1

    @property
    def text(self) -> str:
        return "".join(e.text for e in self.events if isinstance(e, ContentDelta))

    def kinds(self) -> list[str]:
        return [type(e).__name__ for e in self.events]


def sse(*payloads: dict | str) -> list[bytes]:
    """Render payloads as ``data:`` lines, one byte chunk per line."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {data}\n".encode())
    return lines


def chunked(*payloads: str) -> bytes:
    """Wrap text payloads in HTTP/1.1 chunked-transfer framing."""
    out = b""
    for payload in payloads:
        raw = payload.encode()
        out += f"{len(raw):x}\r\n".encode() + raw + b"\r\n"
    return out + b"0\r\n\r\n"


def build(adapter: ProviderAdapter, model: str | None = None) -> RequestSpec:
    params = RequestParams(model=adapter.resolve_model(model))
    return adapter.build_request(MESSAGES, None, params, credential="test-key")


async def run_exchange(
    adapter: ProviderAdapter,
    chunks: Iterable[bytes],
    exit_code: int = 0,
    stderr: Iterable[str] = (),
) -> tuple[Recorder, ExchangeResult]:
    """Drive one exchange over a scripted transport and wait for its outcome."""
    recorder = Recorder()
    transport = FakeTransport(chunks, exit_code=exit_code, stderr=stderr)
    lifecycle = RequestLifecycle(adapter, transport, recorder.callbacks())
    await lifecycle.start(build(adapter))
    result = await lifecycle.wait()
    # let the transport report its exit
    while not transport.exited:
        await asyncio.sleep(0)
    return recorder, result


@pytest.fixture
def claude_adapter() -> ClaudeAdapter:
    return ClaudeAdapter()


@pytest.fixture
def openai_adapter() -> OpenAIAdapter:
    return OpenAIAdapter()


@pytest.fixture
def vertex_adapter() -> VertexAdapter:
    return VertexAdapter(project_id="test-project")


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def test_config(monkeypatch: pytest.MonkeyPatch) -> StreamConfig:
    """Return a StreamConfig with test defaults (no real API key needed)."""
    monkeypatch.setenv("LLM_PROVIDER", "claude")
    monkeypatch.setenv("LLM_API_KEY", "test-key-fake")
    monkeypatch.setenv("LLM_TRACE_ENABLED", "false")
    return StreamConfig()
