"""Demonstrates registering a custom provider adapter.

Any server speaking the OpenAI streaming dialect (Ollama, vLLM, llama.cpp)
can reuse the OpenAI adapter under its own name.
"""

import asyncio

from llm_stream import StreamClient, StreamConfig, register_provider
from llm_stream.providers.openai import OpenAIAdapter


class LocalAdapter(OpenAIAdapter):
    """OpenAI-compatible server on localhost that accepts any model name."""

    name = "local"
    DEFAULT_MODEL = "llama3.2"

    @classmethod
    def from_config(cls, config: StreamConfig) -> "LocalAdapter":
        return cls(
            base_url=config.base_url or "http://localhost:11434/v1",
            timeout_seconds=config.timeout_seconds,
            connect_timeout_seconds=config.connect_timeout_seconds,
        )

    def resolve_model(self, model: str | None) -> str:
        return model or self.DEFAULT_MODEL


async def main() -> None:
    register_provider("local", LocalAdapter.from_config)

    config = StreamConfig(provider="local", api_key="unused")  # type: ignore[arg-type]
    async with StreamClient(config=config) as client:
        resp = await client.complete([{"role": "user", "content": "Hello, world!"}])
        print(f"Provider: {resp.provider}")
        print(f"Response: {resp.text}")


if __name__ == "__main__":
    asyncio.run(main())
