"""Provider registry — maps provider names to adapter factories."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from llm_stream.exceptions import ProviderInitError, ProviderNotFoundError

if TYPE_CHECKING:
    from llm_stream.config import StreamConfig
    from llm_stream.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

# Global registry: name → factory(config) → adapter instance
_PROVIDERS: dict[str, Callable[["StreamConfig"], "ProviderAdapter"]] = {}


def register_provider(
    name: str,
    factory: Callable[["StreamConfig"], "ProviderAdapter"],
) -> None:
    """Register a provider adapter factory.

    Args:
        name: Provider name (e.g. "claude", "openai", "vertex").
        factory: Callable that takes StreamConfig and returns a ProviderAdapter.
    """
    _PROVIDERS[name] = factory
    logger.debug("Registered provider adapter: %s", name)


def build_provider(config: "StreamConfig") -> "ProviderAdapter":
    """Build an adapter instance from configuration.

    Raises:
        ProviderNotFoundError: If the provider name is not registered.
        ProviderInitError: If the adapter factory raises an error.
    """
    _ensure_builtins_registered()

    factory = _PROVIDERS.get(config.provider)
    if factory is None:
        raise ProviderNotFoundError(config.provider)

    try:
        return factory(config)
    except Exception as exc:
        raise ProviderInitError(config.provider, str(exc)) from exc


def list_providers() -> list[str]:
    """Return names of all registered providers."""
    _ensure_builtins_registered()
    return list(_PROVIDERS.keys())


# ── Lazy Registration ───────────────────────────────────────────

_builtins_registered = False


def _ensure_builtins_registered() -> None:
    """Register the built-in adapters on first use."""
    global _builtins_registered  # noqa: PLW0603
    if _builtins_registered:
        return
    _builtins_registered = True

    from llm_stream.providers.claude import ClaudeAdapter
    from llm_stream.providers.openai import OpenAIAdapter
    from llm_stream.providers.vertex import VertexAdapter

    # setdefault semantics: a caller's own registration under a built-in name wins
    for name, factory in (
        ("claude", ClaudeAdapter.from_config),
        ("openai", OpenAIAdapter.from_config),
        ("vertex", VertexAdapter.from_config),
    ):
        if name not in _PROVIDERS:
            register_provider(name, factory)
