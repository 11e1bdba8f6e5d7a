"""Demonstrates switching providers with zero code changes.

Run with different env vars:
    LLM_PROVIDER=claude ANTHROPIC_API_KEY=sk-... python provider_switching.py
    LLM_PROVIDER=openai OPENAI_API_KEY=sk-... python provider_switching.py
    LLM_PROVIDER=vertex LLM_VERTEX_PROJECT_ID=my-proj \\
        VERTEX_AI_ACCESS_TOKEN=$(gcloud auth print-access-token) python provider_switching.py
"""

import asyncio

from llm_stream import StreamClient


async def main() -> None:
    async with StreamClient() as client:
        resp = await client.complete(
            [{"role": "user", "content": "Name three primary colors."}],
        )
        print(f"Provider: {resp.provider}")
        print(f"Model: {resp.model}")
        print(f"Answer: {resp.text}")
        print(f"Latency: {resp.latency_ms:.0f}ms")


if __name__ == "__main__":
    asyncio.run(main())
