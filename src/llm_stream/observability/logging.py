"""Structured logging for llm-stream.

Library modules log through ``logging.getLogger(__name__)`` with messages of
the form ``"event_name | key=value key=value"``. ``configure_logging`` routes
those records through structlog, which splits each message into an event
name and fields before rendering it as JSON or console output.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars

_CONFIGURED = False

# a value runs until the next " key=" or the end of the message
_FIELD_RE = re.compile(r"(\w+)=(.*?)(?=\s+\w+=|$)", re.DOTALL)


def split_event_fields(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor turning ``"name | k=v ..."`` into ``event=name`` plus fields.

    Fields never overwrite keys structlog has already set. Text before the
    first ``key=`` is kept under ``detail``.
    """
    event = event_dict.get("event")
    if not isinstance(event, str) or " | " not in event:
        return event_dict
    name, _, rest = event.partition(" | ")
    if not name or " " in name:
        return event_dict

    event_dict["event"] = name
    first = _FIELD_RE.search(rest)
    detail = rest[: first.start()].strip() if first else rest.strip()
    if detail:
        event_dict.setdefault("detail", detail)
    for key, value in _FIELD_RE.findall(rest):
        event_dict.setdefault(key, value)
    return event_dict


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the structlog formatter on the root logger, once per process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR). Unknown names
            fall back to INFO.
        fmt: "json" or "console".
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    pre_chain: list[Any] = [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        split_event_fields,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: Any
    if fmt == "json":
        # ConsoleRenderer formats exceptions itself
        pre_chain.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    logging.getLogger(__name__).debug("logging_configured | level=%s format=%s", level.upper(), fmt)


def reset_logging() -> None:
    """Allow ``configure_logging`` to run again (used by tests)."""
    global _CONFIGURED
    _CONFIGURED = False
