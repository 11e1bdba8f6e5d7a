"""StreamClient — the session object consumers import and use."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

from llm_stream.config import StreamConfig
from llm_stream.cost import calculate_cost
from llm_stream.lifecycle import RequestLifecycle, StreamCallbacks
from llm_stream.observability.logging import configure_logging
from llm_stream.observability.tracing import configure_tracing, traced_exchange
from llm_stream.providers.base import ProviderAdapter
from llm_stream.registry import build_provider
from llm_stream.transport import CurlTransport, Transport
from llm_stream.types import (
    ContentDelta,
    ExchangeHandle,
    ExchangeResult,
    ExchangeState,
    LLMMessage,
    NormalizedEvent,
    RequestParams,
    StreamResponse,
    Thinking,
    UsageCounters,
)

logger = logging.getLogger(__name__)


class StreamClient:
    """Streaming LLM session with config-driven provider selection.

    Provider switching happens entirely via environment variables. Token
    usage is accumulated across every exchange made on the instance.

    Usage:
        # Reads LLM_* env vars automatically
        async with StreamClient() as client:
            async for event in client.stream([{"role": "user", "content": "Hi"}]):
                if isinstance(event, ContentDelta):
                    print(event.text, end="")

        # Callback style, with cancellation
        handle = await client.send(messages, StreamCallbacks(on_event=render))
        client.cancel(handle)

        # Or with an injected adapter and transport (for testing)
        client = StreamClient(adapter=my_adapter, transport_factory=FakeTransport)
    """

    #: Finished outcomes kept for ``wait()``; the oldest are evicted first.
    max_retained_results = 256

    def __init__(
        self,
        config: StreamConfig | None = None,
        adapter: ProviderAdapter | None = None,
        transport_factory: Callable[[], Transport] | None = None,
    ) -> None:
        self._config = config or StreamConfig()
        self._adapter = adapter or build_provider(self._config)
        self._transport_factory = transport_factory or self._curl_transport
        self._usage = UsageCounters()
        self._cost_usd = 0.0
        self._exchange_count = 0
        self._active: dict[str, RequestLifecycle] = {}
        self._results: dict[str, ExchangeResult] = {}
        self._closed = False

        configure_logging(level=self._config.log_level, fmt=self._config.log_format)
        if self._config.trace_enabled:
            configure_tracing(
                exporter=self._config.trace_exporter,
                endpoint=self._config.trace_endpoint,
                service_name=self._config.trace_service_name,
            )

    @property
    def provider(self) -> str:
        return self._adapter.name

    # ── Exchanges ───────────────────────────────────────────────

    async def send(
        self,
        messages: Sequence[LLMMessage],
        callbacks: StreamCallbacks | None = None,
        *,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> ExchangeHandle:
        """Start one exchange and return its handle immediately.

        Events, stderr lines and the terminal outcome are delivered through
        *callbacks*. Failures after dispatch never raise here; they arrive as
        an ``ErrorEvent`` followed by a failed outcome.

        Raises:
            RuntimeError: If the client is closed.
            ValueError: If no credential is configured, or the request
                cannot be built (e.g. Vertex without a project id).
            CurlNotFoundError: If the default transport cannot find curl.
        """
        params = self._params(model, max_tokens, temperature, thinking_budget)
        return await self._dispatch(messages, callbacks, system_prompt, params)

    def cancel(self, handle: ExchangeHandle) -> bool:
        """Cancel an in-flight exchange. Returns ``False`` if it is not active."""
        lifecycle = self._active.get(handle.id)
        if lifecycle is None:
            return False
        return lifecycle.cancel()

    async def wait(self, handle: ExchangeHandle) -> ExchangeResult:
        """Wait for the terminal outcome of *handle*.

        Raises:
            KeyError: If the handle was not issued by this client, or its
                outcome has been evicted from the retained results.
        """
        lifecycle = self._active.get(handle.id)
        if lifecycle is not None:
            return await lifecycle.wait()
        result = self._results.get(handle.id)
        if result is None:
            raise KeyError(f"Unknown exchange {handle.id}")
        return result

    @property
    def active_exchanges(self) -> list[ExchangeHandle]:
        return [lifecycle.handle for lifecycle in self._active.values()]

    async def stream(
        self,
        messages: Sequence[LLMMessage],
        *,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> AsyncIterator[NormalizedEvent]:
        """Yield the normalized events of one exchange.

        Leaving the loop early cancels the exchange. A cancellation made
        elsewhere (``cancel()`` or ``close()``) simply ends the iteration.

        Raises:
            StreamError: The exchange error, once all events were yielded,
                if the exchange failed.
        """
        queue: asyncio.Queue[NormalizedEvent | None] = asyncio.Queue()
        callbacks = StreamCallbacks(
            on_event=queue.put_nowait,
            on_finish=lambda _result: queue.put_nowait(None),
        )
        handle = await self.send(
            messages,
            callbacks,
            system_prompt=system_prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            thinking_budget=thinking_budget,
        )
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            self.cancel(handle)

        result = await self.wait(handle)
        if result.state is ExchangeState.FAILED and result.error is not None:
            raise result.error

    async def complete(
        self,
        messages: Sequence[LLMMessage],
        *,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        thinking_budget: int | None = None,
    ) -> StreamResponse:
        """Run one exchange to the end and return the collected text.

        Raises:
            StreamError: If the exchange failed. ``RequestCancelledError``
                if it was cancelled before completing.
        """
        params = self._params(model, max_tokens, temperature, thinking_budget)
        text: list[str] = []
        thinking: list[str] = []

        def collect(event: NormalizedEvent) -> None:
            if isinstance(event, ContentDelta):
                text.append(event.text)
            elif isinstance(event, Thinking):
                thinking.append(event.text)

        async with traced_exchange(model=params.model, provider=self._adapter.name) as span_data:
            started = time.monotonic()
            handle = await self._dispatch(
                messages, StreamCallbacks(on_event=collect), system_prompt, params
            )
            result = await self.wait(handle)
            if result.error is not None:
                raise result.error

            response = StreamResponse(
                text="".join(text),
                thinking="".join(thinking),
                usage=result.usage,
                model=params.model,
                provider=self._adapter.name,
                latency_ms=(time.monotonic() - started) * 1000,
                metadata={"exchange_id": handle.id},
            )
            span_data["response"] = response

        return response

    # ── Session usage ───────────────────────────────────────────

    @property
    def usage(self) -> UsageCounters:
        """Session counters: the sum of every completed exchange."""
        return self._usage

    @property
    def total_tokens(self) -> int:
        return self._usage.total

    @property
    def exchange_count(self) -> int:
        """Number of exchanges dispatched on this client instance."""
        return self._exchange_count

    def usage_summary(self) -> dict[str, Any]:
        return {
            "exchange_count": self._exchange_count,
            "input_tokens": self._usage.input,
            "output_tokens": self._usage.output,
            "thoughts_tokens": self._usage.thoughts,
            "total_tokens": self._usage.total,
            "total_cost_usd": round(self._cost_usd, 6),
        }

    # ── Lifetime ────────────────────────────────────────────────

    async def close(self) -> None:
        """Cancel every in-flight exchange. Further sends are refused."""
        if self._closed:
            return
        self._closed = True
        for lifecycle in list(self._active.values()):
            lifecycle.cancel()

    async def __aenter__(self) -> StreamClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── Internals ───────────────────────────────────────────────

    def _curl_transport(self) -> Transport:
        return CurlTransport(self._config.curl_path)

    def _params(
        self,
        model: str | None,
        max_tokens: int | None,
        temperature: float | None,
        thinking_budget: int | None,
    ) -> RequestParams:
        return RequestParams(
            model=self._adapter.resolve_model(model or self._config.model),
            max_tokens=max_tokens or self._config.max_tokens,
            temperature=temperature if temperature is not None else self._config.temperature,
            thinking_budget=(
                thinking_budget if thinking_budget is not None else self._config.thinking_budget
            ),
        )

    async def _dispatch(
        self,
        messages: Sequence[LLMMessage],
        callbacks: StreamCallbacks | None,
        system_prompt: str | None,
        params: RequestParams,
    ) -> ExchangeHandle:
        if self._closed:
            raise RuntimeError("StreamClient is closed")

        request = self._adapter.build_request(
            messages,
            system_prompt,
            params,
            credential=self._config.get_api_key(),
        )
        user = callbacks or StreamCallbacks()

        def on_finish(result: ExchangeResult) -> None:
            self._active.pop(lifecycle.handle.id, None)
            self._results[lifecycle.handle.id] = result
            while len(self._results) > self.max_retained_results:
                self._results.pop(next(iter(self._results)))
            completed = lifecycle.usage.last_completed
            if completed is not None:
                self._cost_usd += calculate_cost(params.model, completed).total_usd
            if user.on_finish:
                user.on_finish(result)

        lifecycle = RequestLifecycle(
            self._adapter,
            self._transport_factory(),
            StreamCallbacks(
                on_event=user.on_event,
                on_stderr=user.on_stderr,
                on_finish=on_finish,
                on_cleanup=user.on_cleanup,
            ),
            session_usage=self._usage,
            cancel_grace_seconds=self._config.cancel_grace_ms / 1000,
        )
        self._active[lifecycle.handle.id] = lifecycle
        self._exchange_count += 1
        logger.debug(
            "exchange_dispatch | id=%s provider=%s model=%s",
            lifecycle.handle.id,
            self._adapter.name,
            params.model,
        )
        return await lifecycle.start(request)
