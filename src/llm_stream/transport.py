"""Transports — carry a built request to the backend and stream the reply back.

The default transport runs ``curl`` as a subprocess. curl keeps the
chunked-transfer framing intact with ``--raw``, reports connection failures
and timeouts through its exit status, and stops cleanly on SIGINT.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import signal
from typing import Protocol

from llm_stream.exceptions import CurlNotFoundError
from llm_stream.types import Framing, RequestSpec

logger = logging.getLogger(__name__)

_READ_SIZE = 4096


class TransportSink(Protocol):
    """Receiver of transport notifications. Implemented by the lifecycle."""

    def on_bytes(self, data: bytes) -> None: ...

    def on_stderr(self, line: str) -> None: ...

    def on_exit(self, code: int) -> None: ...


class Transport(Protocol):
    """Protocol that all transports must implement.

    ``start`` returns once the request has been dispatched. Bytes, stderr
    lines and the exit status are then delivered to the sink from the event
    loop. ``on_exit`` is delivered exactly once.
    """

    async def start(self, request: RequestSpec, sink: TransportSink) -> None: ...

    def terminate(self, graceful: bool = True) -> None: ...


def _seconds(value: float) -> str:
    return f"{value:g}"


class CurlTransport:
    """Transport that delegates the HTTP exchange to a ``curl`` subprocess."""

    def __init__(self, curl_path: str = "curl", read_size: int = _READ_SIZE) -> None:
        resolved = shutil.which(curl_path)
        if resolved is None:
            raise CurlNotFoundError(curl_path)
        self._curl_path = resolved
        self._read_size = read_size
        self._proc: asyncio.subprocess.Process | None = None
        self._pump: asyncio.Task[None] | None = None
        self._stop_requested: bool | None = None

    def build_command(self, request: RequestSpec) -> list[str]:
        """Return the curl argv for *request*. The body is read from stdin."""
        cmd: list[str] = [
            self._curl_path,
            "-N",  # no output buffering
            "-sS",  # quiet, but still report errors on stderr
            "--connect-timeout",
            _seconds(request.connect_timeout_seconds),
            "--max-time",
            _seconds(request.timeout_seconds),
            "--retry",
            "0",
            "--http1.1",
            "-H",
            "Connection: close",
            "-X",
            request.method,
        ]
        for name, value in request.headers.items():
            cmd.extend(["-H", f"{name}: {value}"])
        if request.framing is Framing.CHUNKED_ARRAY:
            cmd.append("--raw")
        cmd.extend(["--data-binary", "@-", request.url])
        return cmd

    async def start(self, request: RequestSpec, sink: TransportSink) -> None:
        cmd = self.build_command(request)
        logger.debug("curl_start | provider=%s url=%s", request.provider, request.url)

        self._proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._pump = asyncio.create_task(self._run(sink))

        assert self._proc.stdin is not None
        if self._stop_requested is not None:
            # cancelled while the process was being spawned
            self.terminate(self._stop_requested)
            self._proc.stdin.close()
            return

        try:
            self._proc.stdin.write(request.body.encode())
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("curl_stdin_closed | error=%s", exc)
        finally:
            self._proc.stdin.close()

    def terminate(self, graceful: bool = True) -> None:
        if self._proc is None:
            self._stop_requested = graceful
            return
        if self._proc.returncode is not None:
            return
        try:
            if graceful:
                self._proc.send_signal(signal.SIGINT)
            else:
                self._proc.kill()
        except ProcessLookupError:
            logger.debug("curl_already_exited | pid=%s", self._proc.pid)

    async def _run(self, sink: TransportSink) -> None:
        assert self._proc is not None
        try:
            await asyncio.gather(self._read_stdout(sink), self._read_stderr(sink))
        except Exception:
            logger.exception("curl_sink_error | pid=%s", self._proc.pid)
            # nobody drains the pipes any more
            self.terminate(graceful=False)
        finally:
            code = await self._proc.wait()
            logger.debug("curl_exit | code=%d", code)
            sink.on_exit(code)

    async def _read_stdout(self, sink: TransportSink) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        while True:
            chunk = await self._proc.stdout.read(self._read_size)
            if not chunk:
                break
            sink.on_bytes(chunk)

    async def _read_stderr(self, sink: TransportSink) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        async for raw in self._proc.stderr:
            line = raw.decode(errors="replace").rstrip()
            if line:
                sink.on_stderr(line)
