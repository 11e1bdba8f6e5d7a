"""Demonstrates callback-style exchanges and cancellation."""

import asyncio

from llm_stream import ContentDelta, StreamCallbacks, StreamClient


async def main() -> None:
    async with StreamClient() as client:
        received: list[str] = []

        def on_event(event: object) -> None:
            if isinstance(event, ContentDelta):
                received.append(event.text)
                print(event.text, end="", flush=True)

        handle = await client.send(
            [{"role": "user", "content": "Count slowly from 1 to 100."}],
            StreamCallbacks(
                on_event=on_event,
                on_stderr=lambda line: print(f"\n[curl] {line}"),
                on_cleanup=lambda: print("\n[transport closed]"),
            ),
        )

        await asyncio.sleep(2)
        client.cancel(handle)

        result = await client.wait(handle)
        print(f"\nOutcome: {result.state.value} after {len(received)} deltas")


if __name__ == "__main__":
    asyncio.run(main())
