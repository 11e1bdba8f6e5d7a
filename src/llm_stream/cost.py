"""Token pricing registry and cost lookup."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from llm_stream.types import UsageCounters

logger = logging.getLogger(__name__)

# ── Pricing Registry (USD per 1 million tokens) ────────────────
_PRICING: dict[str, dict[str, float]] = {
    # Anthropic
    "claude-3-5-sonnet": {"input": 3.00, "output": 15.00},
    "claude-3-7-sonnet": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku": {"input": 0.80, "output": 4.00},
    "claude-3-opus": {"input": 15.00, "output": 75.00},
    # OpenAI
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4.1": {"input": 2.00, "output": 8.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "o3-mini": {"input": 1.10, "output": 4.40},
    # Vertex AI
    "gemini-2.0-flash": {"input": 0.15, "output": 0.60},
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
}


@dataclass(frozen=True)
class UsageCost:
    """Cost in USD for a set of usage counters."""

    input_usd: float = 0.0
    output_usd: float = 0.0

    @property
    def total_usd(self) -> float:
        return self.input_usd + self.output_usd


def register_pricing(model: str, input_per_1m: float, output_per_1m: float) -> None:
    """Register or update pricing for a model or model-id prefix.

    Args:
        model: Model identifier (or a prefix such as ``claude-3-5-sonnet``).
        input_per_1m: Cost in USD per 1M input tokens.
        output_per_1m: Cost in USD per 1M output tokens.
    """
    _PRICING[model] = {"input": input_per_1m, "output": output_per_1m}


def find_pricing(model: str) -> dict[str, float] | None:
    """Return pricing for *model*, matching dated ids against known prefixes.

    ``claude-3-5-sonnet-20241022`` resolves to ``claude-3-5-sonnet``; the
    longest registered prefix made of whole ``-``/``.`` separated parts wins.
    """
    if model in _PRICING:
        return _PRICING[model]

    best: dict[str, float] | None = None
    for end in (m.start() for m in re.finditer(r"[-.]", model)):
        candidate = model[:end]
        if candidate in _PRICING:
            best = _PRICING[candidate]
    return best


def calculate_cost(model: str, usage: UsageCounters) -> UsageCost:
    """Calculate USD cost for *usage*. Thought tokens are billed as output.

    Returns a zero cost for unknown models.
    """
    pricing = find_pricing(model)
    if pricing is None:
        logger.debug("pricing_unknown | model=%s", model)
        return UsageCost()
    return UsageCost(
        input_usd=usage.input * pricing["input"] / 1_000_000,
        output_usd=(usage.output + usage.thoughts) * pricing["output"] / 1_000_000,
    )
