"""Observability sub-package — tracing and logging."""

from llm_stream.observability.logging import configure_logging
from llm_stream.observability.tracing import (
    configure_tracing,
    disable_tracing,
    get_tracer,
    traced_exchange,
)

__all__ = [
    "configure_logging",
    "configure_tracing",
    "disable_tracing",
    "get_tracer",
    "traced_exchange",
]
