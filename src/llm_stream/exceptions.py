"""Exception hierarchy for llm-stream."""

from __future__ import annotations

from enum import Enum


class StreamError(Exception):
    """Base exception for all llm-stream errors."""


class ProviderNotFoundError(StreamError):
    """Raised when the requested provider is not registered."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(
            f"Provider '{provider}' is not registered. "
            f"Check the LLM_PROVIDER env var."
        )


class ProviderInitError(StreamError):
    """Raised when a provider adapter fails to initialize."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        super().__init__(f"Failed to initialize provider '{provider}': {reason}")


class TransportFailure(str, Enum):
    """Known causes of a failed transport."""

    HOST_RESOLUTION = "host_resolution"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    TERMINATED = "terminated"
    SPAWN = "spawn"
    OTHER = "other"


# curl exit statuses with a specific meaning
_EXIT_CAUSES: dict[int, TransportFailure] = {
    6: TransportFailure.HOST_RESOLUTION,
    7: TransportFailure.CONNECTION_REFUSED,
    28: TransportFailure.TIMEOUT,
}

_CAUSE_MESSAGES: dict[TransportFailure, str] = {
    TransportFailure.HOST_RESOLUTION: "Could not resolve host",
    TransportFailure.CONNECTION_REFUSED: "Failed to connect to host",
    TransportFailure.TIMEOUT: "Request timed out",
    TransportFailure.TERMINATED: "Transport was terminated",
    TransportFailure.SPAWN: "Transport could not be started",
    TransportFailure.OTHER: "Transport failed",
}


class TransportError(StreamError):
    """Raised when the transport fails to connect, times out, or is killed."""

    def __init__(
        self,
        cause: TransportFailure,
        exit_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.cause = cause
        self.exit_code = exit_code
        msg = _CAUSE_MESSAGES[cause]
        if exit_code is not None:
            msg = f"{msg} (exit code {exit_code})"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)

    @classmethod
    def from_exit_code(cls, exit_code: int) -> TransportError:
        """Map a non-zero transport exit status to a specific cause."""
        if exit_code < 0:
            return cls(TransportFailure.TERMINATED, exit_code)
        return cls(_EXIT_CAUSES.get(exit_code, TransportFailure.OTHER), exit_code)


class CurlNotFoundError(TransportError):
    """Raised when the curl binary is not found in PATH."""

    def __init__(self, curl_path: str = "curl") -> None:
        super().__init__(
            TransportFailure.SPAWN,
            detail=f"'{curl_path}' not found in PATH. Install curl or set LLM_CURL_PATH.",
        )


class ProtocolError(StreamError):
    """Raised when a frame cannot be interpreted.

    Non-fatal protocol errors are logged and the exchange continues.
    """

    def __init__(self, reason: str, frame: object = None, fatal: bool = False) -> None:
        self.reason = reason
        self.frame = frame
        self.fatal = fatal
        super().__init__(f"Protocol error: {reason}")


class BackendError(StreamError):
    """Raised when the remote service reports a structured error."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(message)


class RequestCancelledError(StreamError):
    """Raised when the caller cancelled the exchange."""

    def __init__(self) -> None:
        super().__init__("Request cancelled")


class CallbackError(StreamError):
    """Raised when a caller's ``on_event`` callback raised.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, exc: BaseException) -> None:
        self.original = exc
        super().__init__(f"on_event callback raised {type(exc).__name__}: {exc}")
        self.__cause__ = exc
