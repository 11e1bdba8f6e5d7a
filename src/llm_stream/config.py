"""Stream configuration via environment variables."""

from __future__ import annotations

import os

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class StreamConfig(BaseSettings):
    """llm-stream configuration.

    All fields are read from environment variables with the ``LLM_`` prefix.
    Example: ``LLM_PROVIDER=openai`` sets ``provider="openai"``.
    """

    model_config = {"env_prefix": "LLM_", "env_file": ".env", "extra": "ignore"}

    # ── Provider ────────────────────────────────────────────────
    provider: str = Field(
        default="claude",
        description="Provider name: 'claude', 'openai' or 'vertex'.",
    )
    model: str | None = Field(
        default=None,
        description="Model identifier. None, or a model of another provider, means the provider default.",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="API key or access token. Falls back to provider-specific env vars if unset.",
    )
    base_url: str | None = Field(
        default=None,
        description="Optional endpoint override for the provider API.",
    )
    vertex_project_id: str | None = Field(default=None)
    vertex_location: str = Field(default="us-central1")

    # ── Request defaults ────────────────────────────────────────
    max_tokens: int = Field(default=4000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    thinking_budget: int | None = Field(
        default=None,
        ge=1024,
        description="Reasoning token budget. None disables thinking output.",
    )

    # ── Transport ───────────────────────────────────────────────
    timeout_seconds: float = Field(default=120.0, gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    cancel_grace_ms: int = Field(
        default=500,
        ge=0,
        description="Delay before a cancelled transport is killed.",
    )
    curl_path: str = Field(default="curl")

    # ── Observability ───────────────────────────────────────────
    trace_enabled: bool = Field(default=False)
    trace_exporter: str = Field(
        default="none",
        description="Trace exporter: 'none', 'console', 'otlp'.",
    )
    trace_endpoint: str = Field(default="http://localhost:4317")
    trace_service_name: str = Field(default="llm-stream")

    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="json",
        description="Log format: 'json' or 'console'.",
    )

    @model_validator(mode="after")
    def _resolve_api_key(self) -> StreamConfig:
        """Fall back to provider-specific env vars if LLM_API_KEY is unset."""
        if self.api_key is not None:
            return self

        fallback_map: dict[str, str] = {
            "claude": "ANTHROPIC_API_KEY",
            "openai": "OPENAI_API_KEY",
            "vertex": "VERTEX_AI_ACCESS_TOKEN",
        }
        env_var = fallback_map.get(self.provider)
        if env_var:
            value = os.environ.get(env_var)
            if value:
                self.api_key = SecretStr(value)

        return self

    def get_api_key(self) -> str:
        """Return the resolved credential as a plain string.

        Raises:
            ValueError: If no credential is configured for the provider.
        """
        if self.api_key is None:
            msg = (
                f"No API key configured for provider '{self.provider}'. "
                f"Set LLM_API_KEY or the provider-specific env var."
            )
            raise ValueError(msg)
        return self.api_key.get_secret_value()
