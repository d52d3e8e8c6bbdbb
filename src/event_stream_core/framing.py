"""
Line framing for event-stream bodies.

Each body chunk is decoded as UTF-8, split into lines on ``\\n`` and every
line is turned into one framed event. Lines starting with ``data: `` have
the prefix stripped and the remainder decoded into a message; decode
failures leave the message empty and never stop the stream.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from .decoding import MessageDecoder

logger = logging.getLogger(__name__)

M = TypeVar("M")

DATA_PREFIX = b"data: "


class LinePolicy(Enum):
    """Which lines produce a message event."""
    EVERY_LINE = "every_line"  # every line, undecoded ones carry no message
    DATA_ONLY = "data_only"    # only lines with the data prefix


@dataclass(frozen=True)
class FramedLine(Generic[M]):
    """
    One framed line of an event stream.

    Attributes:
        data: The raw chunk the line arrived in
        line: The bytes of the line itself, without the line terminator
        message: The decoded message, or None
    """
    data: bytes
    line: bytes
    message: Optional[M] = None

    @property
    def is_data_line(self) -> bool:
        return self.line.startswith(DATA_PREFIX)

    @property
    def payload(self) -> Optional[bytes]:
        """The line content after the data prefix."""
        if not self.is_data_line:
            return None
        return self.line[len(DATA_PREFIX):]


def parse_error_body(chunk: bytes) -> Optional[Dict[str, Any]]:
    """
    Interpret a whole chunk as an API error body.

    Returns:
        The decoded object when the chunk is one JSON object with an
        ``error`` key, otherwise None
    """
    try:
        value = json.loads(chunk)
    except (UnicodeDecodeError, ValueError):
        return None
    if isinstance(value, dict) and "error" in value:
        return value
    return None


class ErrorBodyBuffer:
    """
    Collects the body of a non-2xx response that may arrive in pieces.

    Chunks are held while they could still be the start of a JSON error
    object. Once the held bytes parse as an error body the payload is
    returned and nothing is released; once they cannot (not an object,
    a complete non-error object, or more than ``limit`` bytes) the held
    chunks are handed back unchanged for ordinary framing.
    """

    DEFAULT_LIMIT = 65536

    def __init__(self, limit: int = DEFAULT_LIMIT) -> None:
        self._limit = limit
        self._chunks: List[bytes] = []
        self._size = 0

    @property
    def held(self) -> bytes:
        return b"".join(self._chunks)

    def feed(self, chunk: bytes) -> Tuple[Optional[Dict[str, Any]], List[bytes]]:
        """
        Add one chunk.

        Returns:
            ``(payload, released)``: the error object once complete, and
            the chunks that turned out not to be part of one
        """
        self._chunks.append(chunk)
        self._size += len(chunk)
        held = self.held

        payload = parse_error_body(held)
        if payload is not None:
            self._chunks, self._size = [], 0
            return payload, []

        if self._size <= self._limit and _incomplete_object(held):
            return None, []
        return None, self.release()

    def release(self) -> List[bytes]:
        """Hand back everything held, in arrival order."""
        chunks, self._chunks, self._size = self._chunks, [], 0
        return chunks


def _incomplete_object(data: bytes) -> bool:
    if not data.lstrip().startswith(b"{"):
        return False
    try:
        json.loads(data)
    except (UnicodeDecodeError, ValueError):
        return True
    return False


class LineFramer(Generic[M]):
    """
    Splits body chunks into framed lines.

    With ``buffer_partial_lines`` a trailing line that has not been
    terminated yet is held back and completed by the next chunk (or
    released by ``flush``). Without it every chunk is framed on its own,
    so a line split across two network reads becomes two lines.
    """

    def __init__(
        self,
        decoder: MessageDecoder[M],
        policy: LinePolicy = LinePolicy.EVERY_LINE,
        buffer_partial_lines: bool = True,
    ) -> None:
        self._decoder = decoder
        self._policy = policy
        self._buffer_partial_lines = buffer_partial_lines
        self._pending = b""

    @property
    def policy(self) -> LinePolicy:
        return self._policy

    @property
    def pending(self) -> bytes:
        """Bytes of an unterminated line held back for the next chunk."""
        return self._pending

    def feed(self, chunk: bytes) -> List[FramedLine[M]]:
        """Frame one chunk and return its lines in order."""
        data = self._pending + chunk
        self._pending = b""

        lines = data.split(b"\n")
        tail = lines.pop()
        if tail:
            if self._buffer_partial_lines:
                self._pending = tail
            else:
                lines.append(tail)

        return [
            framed
            for framed in (self._frame_line(chunk, line) for line in lines)
            if framed is not None
        ]

    def flush(self) -> List[FramedLine[M]]:
        """Release a held-back line once the body has ended."""
        if not self._pending:
            return []
        line, self._pending = self._pending, b""
        framed = self._frame_line(line, line)
        return [framed] if framed is not None else []

    def _frame_line(self, chunk: bytes, line: bytes) -> Optional[FramedLine[M]]:
        if line.endswith(b"\r"):
            line = line[:-1]
        # Invalid UTF-8 is replaced rather than dropping the line
        line = line.decode("utf-8", errors="replace").encode("utf-8")

        if not line.startswith(DATA_PREFIX):
            if self._policy is LinePolicy.DATA_ONLY:
                return None
            return FramedLine(data=chunk, line=line)

        message = None
        try:
            message = self._decoder.decode(line[len(DATA_PREFIX):])
        except Exception as e:  # decoders are caller-supplied
            logger.debug(f"Undecodable data line kept without message: {e}")

        return FramedLine(data=chunk, line=line, message=message)
