"""OpenTelemetry tracing for streamed exchanges."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from llm_stream.cost import calculate_cost
from llm_stream.types import StreamResponse

logger = logging.getLogger(__name__)

# ── Optional OTEL imports ───────────────────────────────────────
try:
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    HAS_OTEL = True
except ImportError:
    HAS_OTEL = False

try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )

    HAS_OTLP = True
except ImportError:
    HAS_OTLP = False


_tracer: Any = None


def configure_tracing(
    exporter: str = "none",
    endpoint: str = "http://localhost:4317",
    service_name: str = "llm-stream",
) -> None:
    """Configure OpenTelemetry tracing.

    Args:
        exporter: One of "none", "console", "otlp".
        endpoint: OTLP collector endpoint (only used when exporter="otlp").
        service_name: Service name for spans.
    """
    global _tracer

    if exporter == "none" or not HAS_OTEL:
        _tracer = None
        return

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if exporter == "console":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    elif exporter == "otlp":
        if not HAS_OTLP:
            logger.warning("tracing_disabled | reason=opentelemetry-exporter-otlp not installed")
            _tracer = None
            return
        provider.add_span_processor(
            SimpleSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
    else:
        logger.warning("tracing_disabled | reason=unknown exporter %r", exporter)
        _tracer = None
        return

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer("llm_stream")
    logger.info("tracing_configured | exporter=%s service=%s", exporter, service_name)


def get_tracer() -> Any:
    """Return the configured tracer, or None if tracing is disabled."""
    return _tracer


def disable_tracing() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def traced_exchange(
    model: str | None,
    provider: str,
    operation: str = "llm.stream",
) -> AsyncGenerator[dict[str, Any], None]:
    """Wrap one exchange in a span.

    Usage:
        async with traced_exchange("gpt-4o", "openai") as span_data:
            response = await collect(...)
            span_data["response"] = response

    When a ``StreamResponse`` is left under ``"response"`` the span records
    token counts, cost and latency. Exceptions mark the span as failed.
    """
    span_data: dict[str, Any] = {}

    if _tracer is None:
        yield span_data
        return

    with _tracer.start_as_current_span(operation) as span:
        span.set_attribute("llm.model", model or "provider-default")
        span.set_attribute("llm.provider", provider)

        try:
            yield span_data
        except Exception as exc:
            span.set_status(trace.StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise
        else:
            response = span_data.get("response")
            if isinstance(response, StreamResponse):
                usage = response.usage
                span.set_attribute("llm.input_tokens", usage.input)
                span.set_attribute("llm.output_tokens", usage.output)
                span.set_attribute("llm.thoughts_tokens", usage.thoughts)
                span.set_attribute("llm.total_tokens", usage.total)
                span.set_attribute(
                    "llm.cost_usd", calculate_cost(response.model, usage).total_usd
                )
                span.set_attribute("llm.latency_ms", response.latency_ms)
