"""Incremental decoders: transport bytes in, provider frames out.

Two framings are supported:

* ``LineDecoder``: newline-delimited text (SSE-style streams). Complete lines
  are returned verbatim; an unterminated tail is kept for the next call.
* ``ChunkedArrayDecoder``: an HTTP/1.1 chunked-transfer body wrapping a JSON
  array that is streamed element by element. Each complete element object is
  returned as soon as it is available.

Decoders hold per-exchange state and must never be shared between exchanges.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from typing import Any, Protocol, Union

from llm_stream.types import Framing

logger = logging.getLogger(__name__)

Frame = Union[str, dict[str, Any]]

# <hex-length>[;extensions]\r\n at the head of the buffer
_CHUNK_HEADER_RE = re.compile(rb"([0-9a-fA-F]+)(?:;[^\r\n]*)?\r\n")

_JSON = json.JSONDecoder()


class ChunkDecoder(Protocol):
    """Contract shared by all decoders."""

    framing: Framing

    def feed(self, data: bytes) -> list[Frame]:
        """Consume a fragment of the body and return the frames it completes."""
        ...

    def flush(self) -> list[Frame]:
        """Return whatever can still be resolved once the stream has ended."""
        ...

    def reset(self) -> None:
        """Discard all buffered state."""
        ...


class LineDecoder:
    """Split a byte stream into text lines.

    Bytes are buffered rather than text so a multi-byte UTF-8 character
    split across two fragments is decoded intact.
    """

    framing = Framing.LINES

    def __init__(self) -> None:
        self._residue = b""

    def feed(self, data: bytes) -> list[Frame]:
        *lines, self._residue = (self._residue + data).split(b"\n")
        return [self._decode(line) for line in lines]

    def flush(self) -> list[Frame]:
        if not self._residue:
            return []
        line, self._residue = self._residue, b""
        return [self._decode(line)]

    def reset(self) -> None:
        self._residue = b""

    @staticmethod
    def _decode(line: bytes) -> str:
        if line.endswith(b"\r"):
            line = line[:-1]
        return line.decode("utf-8", errors="replace")


class ChunkedArrayDecoder:
    """Decode a chunked-transfer body carrying a streamed JSON array.

    Transport chunks are classified as array open (``[``), array close
    (``]``), bare separator (``,``) or element text. Elements are dispatched
    the moment they parse, including standalone objects outside any array
    (error payloads arrive that way). An element split over several chunks
    waits in a pending buffer until it is complete.

    The array text seen so far is kept in an accumulator; on close it is
    parsed once more and any element not yet dispatched is dispatched then,
    so every element is emitted exactly once.
    """

    framing = Framing.CHUNKED_ARRAY

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._array: str | None = None
        self._dispatched = 0
        self._after_separator = False
        self._pending = ""

    def feed(self, data: bytes) -> list[Frame]:
        self._buffer += data
        frames: list[Frame] = []
        while True:
            match = _CHUNK_HEADER_RE.match(self._buffer)
            if match is None:
                break
            length = int(match.group(1), 16)
            start = match.end()
            # payload plus its trailing CRLF must be buffered
            if len(self._buffer) < start + length + 2:
                break
            payload = bytes(self._buffer[start : start + length])
            if self._buffer[start + length : start + length + 2] != b"\r\n":
                logger.warning("chunk_trailer_missing | length=%d", length)
            del self._buffer[: start + length + 2]
            if length == 0:
                continue
            self._classify(self._utf8.decode(payload), frames)
        return frames

    def flush(self) -> list[Frame]:
        frames: list[Frame] = []
        if self._pending:
            logger.warning(
                "chunked_element_truncated | pending=%s", self._pending[:200]
            )
        remainder = bytes(self._buffer).strip()
        if remainder:
            # body that was never chunk-framed, e.g. a plain error response
            text = remainder.decode("utf-8", errors="replace")
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("unframed_body_unparsed | body=%s", text[:500])
            else:
                if isinstance(value, list):
                    for item in value:
                        self._dispatch(item, frames)
                else:
                    self._dispatch(value, frames)
        if self._array is not None:
            logger.debug("chunked_array_open_at_eof | dispatched=%d", self._dispatched)
        self.reset()
        return frames

    def reset(self) -> None:
        self._buffer.clear()
        self._utf8.reset()
        self._array = None
        self._dispatched = 0
        self._after_separator = False
        self._pending = ""

    # ── Chunk classification ─────────────────────────────────────

    def _classify(self, text: str, frames: list[Frame]) -> None:
        if self._pending:
            self._continue_element(text, frames)
            return
        text = text.lstrip()
        token = text.rstrip()
        if not token:
            return
        if token == "[":
            self._open()
        elif token == "]":
            self._close(frames)
        elif token == ",":
            self._separator()
        else:
            self._element(text, frames)

    def _element(self, text: str, frames: list[Frame]) -> None:
        try:
            value, end = _JSON.raw_decode(text)
        except json.JSONDecodeError:
            if text.startswith("["):
                self._open()
                self._classify(text[1:], frames)
            elif text.startswith(","):
                self._separator()
                self._classify(text[1:], frames)
            elif text.startswith("]"):
                self._close(frames)
                self._classify(text[1:], frames)
            elif text.startswith("{"):
                # an object continued in the next chunk
                self._pending = text
            else:
                logger.warning("chunked_unparseable_chunk | chunk=%s", text[:200])
            return

        if isinstance(value, list):
            # a whole array delivered in one chunk
            for item in value:
                self._dispatch(item, frames)
        elif isinstance(value, dict):
            self._accept(text[:end], value, frames)
        else:
            logger.warning("chunked_unexpected_value | value=%r", value)
        self._classify(text[end:], frames)

    def _continue_element(self, text: str, frames: list[Frame]) -> None:
        candidate = self._pending + text
        try:
            value, end = _JSON.raw_decode(candidate)
        except json.JSONDecodeError:
            self._pending = candidate
            return
        self._pending = ""
        if isinstance(value, dict):
            self._accept(candidate[:end], value, frames)
        else:
            logger.warning("chunked_unexpected_value | value=%r", value)
        self._classify(candidate[end:], frames)

    def _accept(self, raw: str, value: dict[str, Any], frames: list[Frame]) -> None:
        frames.append(value)
        if self._array is not None:
            if self._array == "[" or self._after_separator:
                self._array += raw
            else:
                self._array += "," + raw
            self._dispatched += 1
        self._after_separator = False

    def _open(self) -> None:
        if self._array is not None:
            logger.warning("chunked_array_reopened | dispatched=%d", self._dispatched)
        self._array = "["
        self._dispatched = 0
        self._after_separator = False

    def _separator(self) -> None:
        if self._array is None or self._array == "[" or self._after_separator:
            logger.debug("chunked_stray_separator")
            return
        self._array += ","
        self._after_separator = True

    def _close(self, frames: list[Frame]) -> None:
        if self._array is None:
            logger.warning("chunked_stray_close")
            return
        try:
            elements = json.loads(self._array + "]")
        except json.JSONDecodeError as exc:
            logger.warning("chunked_array_malformed | error=%s array=%s", exc, self._array[:500])
            elements = []
        for item in elements[self._dispatched :]:
            self._dispatch(item, frames)
        self._array = None
        self._dispatched = 0
        self._after_separator = False

    @staticmethod
    def _dispatch(item: object, frames: list[Frame]) -> None:
        if isinstance(item, dict):
            frames.append(item)
        else:
            logger.warning("chunked_non_object_element | value=%r", item)


def make_decoder(framing: Framing) -> ChunkDecoder:
    """Return a fresh decoder for *framing*."""
    if framing is Framing.CHUNKED_ARRAY:
        return ChunkedArrayDecoder()
    return LineDecoder()
