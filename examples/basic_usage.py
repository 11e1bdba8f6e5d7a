"""Basic streaming with llm-stream."""

import asyncio

from llm_stream import ContentDelta, StreamClient, Thinking


async def main() -> None:
    """Print an answer as it streams in."""
    # StreamClient reads LLM_* env vars automatically
    async with StreamClient() as client:
        async for event in client.stream(
            [{"role": "user", "content": "What is the capital of France?"}],
            system_prompt="Answer in one sentence.",
        ):
            if isinstance(event, Thinking):
                print(f"[thinking] {event.text}", end="", flush=True)
            elif isinstance(event, ContentDelta):
                print(event.text, end="", flush=True)
        print()

        usage = client.usage
        print(f"Tokens: {usage.input} in / {usage.output} out / {usage.thoughts} thoughts")
        print(f"Cost: ${client.usage_summary()['total_cost_usd']:.6f}")


if __name__ == "__main__":
    asyncio.run(main())
