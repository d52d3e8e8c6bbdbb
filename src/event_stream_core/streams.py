"""
Response body streaming for event_stream_core.

The body of an event-stream response is consumed as it arrives: every
``__anext__`` pulls one chunk from the owning connection, so nothing is
read ahead of the consumer. The connection is released exactly once,
when the body ends, when reading it fails, or when the consumer gives up.
"""

import logging
from typing import AsyncIterable, List, Optional, TYPE_CHECKING

from .exceptions import EventStreamError, StreamError

if TYPE_CHECKING:
    from .http11 import HTTP11Connection

logger = logging.getLogger(__name__)


class ResponseStream:
    """
    Async iterator over the body chunks of one response.

    Chunks are yielded in arrival order, exactly as the network delivered
    them after transfer decoding.
    """

    def __init__(
        self,
        connection: "HTTP11Connection",
        content_length: Optional[int] = None,
        chunked: bool = False,
    ) -> None:
        """
        Args:
            connection: Connection the body is read from; closed by the stream
            content_length: Length announced by the server, if any
            chunked: Whether the body uses chunked transfer encoding
        """
        if content_length is not None and content_length < 0:
            raise ValueError("content_length must be non-negative")

        self._connection = connection
        self._content_length = content_length
        self._chunked = chunked
        self._bytes_read = 0
        self._finished = False
        self._closed = False

    def __aiter__(self) -> "ResponseStream":
        if self._closed:
            raise StreamError("Cannot iterate over closed stream")
        return self

    async def __anext__(self) -> bytes:
        if self._finished:
            raise StopAsyncIteration
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        try:
            chunk = await self._connection._receive_body_chunk()
        except EventStreamError:
            await self.aclose()
            raise

        if chunk is None:
            self._finished = True
            logger.debug(
                f"Response body finished after {self._bytes_read} bytes "
                f"({self._describe_framing()})"
            )
            await self.aclose()
            raise StopAsyncIteration

        self._bytes_read += len(chunk)
        return chunk

    async def aread(self) -> bytes:
        """Consume the rest of the body."""
        if self._closed:
            raise StreamError("Cannot read from closed stream")
        return await read_stream_to_bytes(self)

    async def aclose(self) -> None:
        """Release the connection. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        await self._connection._response_closed()

    def _describe_framing(self) -> str:
        if self._chunked:
            return "chunked"
        if self._content_length is not None:
            return f"content-length {self._content_length}"
        return "close-delimited"

    @property
    def content_length(self) -> Optional[int]:
        return self._content_length

    @property
    def chunked(self) -> bool:
        return self._chunked

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_read(self) -> int:
        """Body bytes yielded so far."""
        return self._bytes_read


async def stream_to_list(stream: AsyncIterable[bytes]) -> List[bytes]:
    """Collect the chunks of a byte stream, keeping their boundaries."""
    return [chunk async for chunk in stream]


async def read_stream_to_bytes(stream: AsyncIterable[bytes]) -> bytes:
    """Collect a byte stream into one bytes object."""
    return b"".join(await stream_to_list(stream))
