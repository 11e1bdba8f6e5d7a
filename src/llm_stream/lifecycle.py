"""Request lifecycle — one in-flight exchange from dispatch to terminal outcome.

States::

    idle -> sending -> streaming -> completing -> done | failed
                any non-terminal state -> cancelled

Every transport notification is handled inline: bytes are decoded, parsed
by the provider adapter, normalized and handed to the caller before the
callback returns. Exactly one ``ExchangeResult`` is delivered per exchange.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from llm_stream.decoding import ChunkDecoder, Frame, make_decoder
from llm_stream.exceptions import (
    BackendError,
    CallbackError,
    ProtocolError,
    RequestCancelledError,
    StreamError,
    TransportError,
    TransportFailure,
)
from llm_stream.normalizer import EventNormalizer
from llm_stream.providers.base import ProviderAdapter
from llm_stream.transport import Transport
from llm_stream.types import (
    Done,
    ErrorEvent,
    ExchangeHandle,
    ExchangeResult,
    ExchangeState,
    MessageComplete,
    NormalizedEvent,
    RequestSpec,
    UsageCounters,
)
from llm_stream.usage import UsageAggregator

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_GRACE_SECONDS = 0.5


@dataclass
class StreamCallbacks:
    """Caller hooks for one exchange. All are optional.

    ``on_finish`` receives the terminal outcome exactly once. ``on_cleanup``
    fires after the transport has exited, including after cancellation.
    """

    on_event: Callable[[NormalizedEvent], None] | None = None
    on_stderr: Callable[[str], None] | None = None
    on_finish: Callable[[ExchangeResult], None] | None = None
    on_cleanup: Callable[[], None] | None = None


class RequestLifecycle:
    """Owns one exchange: transport, decoder, normalizer and usage state."""

    def __init__(
        self,
        adapter: ProviderAdapter,
        transport: Transport,
        callbacks: StreamCallbacks | None = None,
        session_usage: UsageCounters | None = None,
        cancel_grace_seconds: float = DEFAULT_CANCEL_GRACE_SECONDS,
    ) -> None:
        self.handle = ExchangeHandle()
        self.usage = UsageAggregator(session_usage)
        self._adapter = adapter
        self._transport = transport
        self._callbacks = callbacks or StreamCallbacks()
        self._grace = cancel_grace_seconds
        self._state = ExchangeState.IDLE
        self._decoder: ChunkDecoder | None = None
        self._normalizer = EventNormalizer()
        self._error: StreamError | None = None
        self._callback_error: Exception | None = None
        self._done_emitted = False
        self._exited = False
        self._escalation: asyncio.TimerHandle | None = None
        self._outcome: ExchangeResult | None = None
        self._finished = asyncio.Event()
        self._started_at = 0.0

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def result(self) -> ExchangeResult | None:
        """The terminal outcome, once delivered."""
        return self._outcome

    async def start(self, request: RequestSpec) -> ExchangeHandle:
        """Dispatch *request* and begin streaming.

        Raises:
            RuntimeError: If this lifecycle was already started.
        """
        if self._state is not ExchangeState.IDLE:
            msg = f"Exchange {self.handle.id} already started ({self._state.value})"
            raise RuntimeError(msg)

        self._decoder = make_decoder(request.framing)
        self.usage.begin()
        self._state = ExchangeState.SENDING
        self._started_at = time.monotonic()
        logger.info(
            "exchange_start | id=%s provider=%s url=%s",
            self.handle.id,
            request.provider,
            request.url,
        )

        try:
            await self._transport.start(request, self)
        except Exception as exc:
            logger.error("exchange_spawn_failed | id=%s error=%s: %s", self.handle.id, type(exc).__name__, exc)
            self._exited = True
            error = exc if isinstance(exc, TransportError) else TransportError(
                TransportFailure.SPAWN, detail=str(exc)
            )
            self._fail(error)
            self._cleanup()
            return self.handle

        if self._state is ExchangeState.SENDING:
            self._state = ExchangeState.STREAMING
        return self.handle

    def cancel(self) -> bool:
        """Cancel the exchange. Returns ``False`` if it had already finished.

        The outcome is delivered immediately; the transport is asked to stop
        and is killed if it is still running after the grace period. Called
        outside a running event loop, the transport is killed at once.
        """
        if self._state.is_terminal:
            return False
        logger.info("exchange_cancel | id=%s state=%s", self.handle.id, self._state.value)

        dispatched = self._state is not ExchangeState.IDLE
        if self._decoder is not None:
            self._decoder.reset()
        self._finish(ExchangeState.CANCELLED, RequestCancelledError())

        if dispatched:
            self._stop_transport()
        return True

    async def wait(self) -> ExchangeResult:
        """Wait for the terminal outcome."""
        await self._finished.wait()
        assert self._outcome is not None
        return self._outcome

    # ── Transport sink ───────────────────────────────────────────

    def on_bytes(self, data: bytes) -> None:
        if self._state.is_terminal or self._decoder is None:
            logger.debug(
                "bytes_dropped | id=%s state=%s size=%d", self.handle.id, self._state.value, len(data)
            )
            return
        if self._state is ExchangeState.SENDING:
            self._state = ExchangeState.STREAMING
        self._process(self._decoder.feed(data))

    def on_stderr(self, line: str) -> None:
        logger.warning("exchange_stderr | id=%s line=%s", self.handle.id, line)
        if self._state is not ExchangeState.CANCELLED:
            self._notify("on_stderr", self._callbacks.on_stderr, line)

    def on_exit(self, code: int) -> None:
        if self._exited:
            return
        self._exited = True
        if self._escalation is not None:
            self._escalation.cancel()
            self._escalation = None
        logger.debug("exchange_transport_exit | id=%s code=%d", self.handle.id, code)

        if not self._state.is_terminal and self._decoder is not None:
            self._process(self._decoder.flush())

        if not self._state.is_terminal:
            if self._error is not None:
                # an error already surfaced wins over the exit status
                self._fail(self._error)
            elif code == 0:
                self._emit(Done())
                if self._callback_error is None:
                    self._finish(ExchangeState.DONE)
            else:
                self._fail(TransportError.from_exit_code(code))
        if not self._state.is_terminal and self._callback_error is not None:
            self._fail(CallbackError(self._callback_error))
        self._cleanup()

    # ── Internals ────────────────────────────────────────────────

    def _process(self, frames: Iterable[Frame]) -> None:
        for frame in frames:
            if self._state.is_terminal:
                return
            try:
                raw_events = self._adapter.parse_frame(frame)
            except ProtocolError as exc:
                if self._protocol_error(exc, frame):
                    return
                continue
            for raw in raw_events:
                try:
                    events = self._normalizer.normalize(raw)
                except ProtocolError as exc:
                    if self._protocol_error(exc, frame):
                        return
                    continue
                for event in events:
                    # a callback may have cancelled the exchange
                    if self._state.is_terminal:
                        return
                    self._emit(event)
                    if self._callback_error is not None:
                        if not self._state.is_terminal:
                            self._fail(CallbackError(self._callback_error))
                            self._stop_transport()
                        return

    def _protocol_error(self, exc: ProtocolError, frame: Frame) -> bool:
        """Log *exc*. Returns ``True`` if it was fatal and the exchange failed."""
        if exc.fatal:
            logger.error("protocol_error_fatal | id=%s reason=%s", self.handle.id, exc.reason)
            self._fail(exc)
            self._stop_transport()
            return True
        logger.warning(
            "protocol_anomaly | id=%s reason=%s frame=%s",
            self.handle.id,
            exc.reason,
            str(frame)[:200],
        )
        return False

    def _emit(self, event: NormalizedEvent) -> None:
        if self._done_emitted:
            logger.debug("event_after_done_dropped | id=%s event=%s", self.handle.id, event)
            return
        if isinstance(event, ErrorEvent) and self._error is None:
            self._error = BackendError(self._adapter.name, event.message)
        if isinstance(event, (MessageComplete, Done)) and self._state in (
            ExchangeState.SENDING,
            ExchangeState.STREAMING,
        ):
            self._state = ExchangeState.COMPLETING
        if isinstance(event, Done):
            self._done_emitted = True

        self.usage.observe(event)
        if self._callbacks.on_event is None:
            return
        try:
            self._callbacks.on_event(event)
        except Exception as exc:
            logger.exception(
                "exchange_callback_error | id=%s callback=on_event event=%s",
                self.handle.id,
                type(event).__name__,
            )
            if self._callback_error is None:
                self._callback_error = exc

    def _fail(self, error: StreamError) -> None:
        if self._error is None:
            self._error = error
            self._emit(ErrorEvent(str(error)))
        if not self._done_emitted:
            self._emit(Done())
        self._finish(ExchangeState.FAILED, self._error)

    def _finish(self, state: ExchangeState, error: StreamError | None = None) -> None:
        if self._state.is_terminal:
            return
        self._state = state
        self._outcome = ExchangeResult(state=state, usage=self.usage.current(), error=error)
        latency_ms = (time.monotonic() - self._started_at) * 1000 if self._started_at else 0.0
        logger.info(
            "exchange_finish | id=%s state=%s tokens=%d+%d+%d latency=%.0fms error=%s",
            self.handle.id,
            state.value,
            self._outcome.usage.input,
            self._outcome.usage.output,
            self._outcome.usage.thoughts,
            latency_ms,
            error,
        )
        self._finished.set()
        self._notify("on_finish", self._callbacks.on_finish, self._outcome)

    def _stop_transport(self) -> None:
        """Ask the transport to stop; kill it if it is still running after the grace period."""
        if self._exited or self._escalation is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop to run the grace timer on
            logger.debug("exchange_stop_without_loop | id=%s", self.handle.id)
            self._transport.terminate(graceful=False)
            return
        self._escalation = loop.call_later(self._grace, self._force_terminate)
        self._transport.terminate(graceful=True)

    def _force_terminate(self) -> None:
        self._escalation = None
        if self._exited:
            return
        logger.warning("exchange_force_terminate | id=%s grace=%.2fs", self.handle.id, self._grace)
        self._transport.terminate(graceful=False)

    def _cleanup(self) -> None:
        self._notify("on_cleanup", self._callbacks.on_cleanup)

    def _notify(self, name: str, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("exchange_callback_error | id=%s callback=%s", self.handle.id, name)
