"""Per-request and per-session token accounting."""

from __future__ import annotations

import logging

from llm_stream.types import MessageComplete, NormalizedEvent, UsageCounters, UsageUpdate

logger = logging.getLogger(__name__)


class UsageAggregator:
    """Fold one exchange's usage events into request and session counters.

    Backends report cumulative snapshots, so a ``UsageUpdate`` overwrites the
    matching request counter. On ``MessageComplete`` the request snapshot is
    added to the session counters once and the request counters reset.
    """

    def __init__(self, session: UsageCounters | None = None) -> None:
        self.session = session if session is not None else UsageCounters()
        self.request = UsageCounters()
        self.last_completed: UsageCounters | None = None

    def begin(self) -> None:
        """Reset per-request state at the start of an exchange."""
        self.request.reset()
        self.last_completed = None

    def observe(self, event: NormalizedEvent) -> None:
        if isinstance(event, UsageUpdate):
            self.request.set(event.kind, event.tokens)
        elif isinstance(event, MessageComplete):
            self._complete()

    def current(self) -> UsageCounters:
        """Usage of this exchange: the completed snapshot, else the live counters."""
        if self.last_completed is not None:
            return self.last_completed.snapshot()
        return self.request.snapshot()

    def _complete(self) -> None:
        if self.last_completed is not None:
            logger.debug("usage_already_recorded")
            return
        self.last_completed = self.request.snapshot()
        self.session.add(self.last_completed)
        self.request.reset()
        logger.debug(
            "usage_recorded | input=%d output=%d thoughts=%d session_total=%d",
            self.last_completed.input,
            self.last_completed.output,
            self.last_completed.thoughts,
            self.session.total,
        )
