"""Testing utilities shipped with llm-stream.

Provides ``FakeTransport`` so consumers can drive a ``StreamClient`` or a
``RequestLifecycle`` without spawning curl or touching the network.

Usage::

    from llm_stream import StreamClient, StreamConfig
    from llm_stream.testing import FakeTransport

    body = [
        b'data: {"choices":[{"delta":{"content":"4"}}]}\\n',
        b"data: [DONE]\\n",
    ]
    fake = FakeTransport(body)

    config = StreamConfig(provider="openai", api_key="sk-test")
    async with StreamClient(config=config, transport_factory=lambda: fake) as client:
        resp = await client.complete([{"role": "user", "content": "2+2?"}])
        assert resp.text == "4"
        assert fake.requests[0].provider == "openai"
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from llm_stream.transport import TransportSink
from llm_stream.types import RequestSpec

# Exit statuses reported by a signalled curl process
SIGINT_EXIT = -2
SIGKILL_EXIT = -9


class FakeTransport:
    """Fake transport for testing. Implements the ``Transport`` Protocol.

    Two modes:

    1. **Scripted** (default): after ``start()`` the stderr lines and then the
       byte chunks are delivered one per event-loop turn, followed by the exit
       status.
    2. **Manual**: with ``autoplay=False`` the test drives the sink itself via
       ``feed()``, ``emit_stderr()`` and ``exit()``.

    ``terminate()`` is recorded in ``terminations`` and ends the stream with
    a signal exit status on the next loop turn, or at once outside a running
    loop. ``ignore_interrupt=True`` models a process that only dies on the
    forced kill.
    """

    def __init__(
        self,
        chunks: Iterable[bytes | str] = (),
        *,
        exit_code: int = 0,
        stderr: Iterable[str] = (),
        autoplay: bool = True,
        ignore_interrupt: bool = False,
        spawn_error: Exception | None = None,
    ) -> None:
        self.chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self.exit_code = exit_code
        self.stderr_lines = list(stderr)
        self.autoplay = autoplay
        self.ignore_interrupt = ignore_interrupt
        self.spawn_error = spawn_error
        self.requests: list[RequestSpec] = []
        self.terminations: list[bool] = []
        self.exit_status: int | None = None
        self._sink: TransportSink | None = None
        self._player: asyncio.Task[None] | None = None

    @property
    def started(self) -> bool:
        return self._sink is not None

    @property
    def exited(self) -> bool:
        return self.exit_status is not None

    async def start(self, request: RequestSpec, sink: TransportSink) -> None:
        if self.spawn_error is not None:
            raise self.spawn_error
        self.requests.append(request)
        self._sink = sink
        if self.autoplay:
            self._player = asyncio.get_running_loop().create_task(self._play())

    def terminate(self, graceful: bool = True) -> None:
        self.terminations.append(graceful)
        if self._sink is None or self.exited:
            return
        if graceful and self.ignore_interrupt:
            return
        code = SIGINT_EXIT if graceful else SIGKILL_EXIT
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.exit(code)
            return
        loop.call_soon(self.exit, code)

    # ── Manual driving ──────────────────────────────────────────

    def feed(self, data: bytes | str) -> None:
        """Deliver *data* to the sink as if curl had written it to stdout."""
        assert self._sink is not None, "transport not started"
        self._sink.on_bytes(data.encode() if isinstance(data, str) else data)

    def emit_stderr(self, line: str) -> None:
        assert self._sink is not None, "transport not started"
        self._sink.on_stderr(line)

    def exit(self, code: int | None = None) -> None:
        """Report process exit. Only the first call reaches the sink."""
        if self._sink is None or self.exited:
            return
        self.exit_status = self.exit_code if code is None else code
        self._sink.on_exit(self.exit_status)

    async def _play(self) -> None:
        for line in self.stderr_lines:
            await asyncio.sleep(0)
            if self.exited:
                return
            self.emit_stderr(line)
        for chunk in self.chunks:
            await asyncio.sleep(0)
            if self.exited:
                return
            self.feed(chunk)
        await asyncio.sleep(0)
        self.exit()
