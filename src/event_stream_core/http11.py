"""
HTTP/1.1 connection implementation for event_stream_core.

This module implements the HTTP11Connection class that runs one
HTTP/1.1 request/response cycle over a NetworkStream using h11.
Event-stream responses are long-lived, so connections are never
returned to a pool: a connection serves exactly one request and is
closed afterwards.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

import h11

from .http_primitives import Headers, Request, Response, find_header
from .streams import ResponseStream
from .network.stream import NetworkStream
from .network.utils import format_host_header
from .exceptions import (
    ProtocolError,
    StreamError,
    TransportError,
)

logger = logging.getLogger(__name__)


def _content_length(headers: Headers) -> Optional[int]:
    value = find_header(headers, b"content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


def _is_chunked(headers: Headers) -> bool:
    value = find_header(headers, b"transfer-encoding")
    return value is not None and value.lower() == b"chunked"


class ConnectionState(Enum):
    NEW = "new"           # no request sent yet
    ACTIVE = "active"     # request sent, response in flight
    CLOSED = "closed"     # terminal


class HTTP11Connection:
    """
    One HTTP/1.1 exchange over a NetworkStream, driven by h11.

    A timeout of None waits indefinitely, which is what
    event streams need: they end when the server or the caller ends
    them, not on a fixed deadline.
    """

    DEFAULT_READ_CHUNK_SIZE = 65536  # 64KB

    def __init__(
        self,
        stream: NetworkStream,
        read_timeout: Optional[float] = None,
        write_timeout: Optional[float] = None,
        read_chunk_size: Optional[int] = None,
    ):
        """
        Args:
            stream: Stream the request is written to; owned from now on
            read_timeout: Seconds allowed per read, None to wait forever
            write_timeout: Seconds allowed per write, None to wait forever
            read_chunk_size: Upper bound for a single network read
        """
        self._stream = stream
        self._h11_connection = h11.Connection(h11.CLIENT)
        self._state = ConnectionState.NEW
        self._eof_received = False

        # Configuration
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._read_chunk_size = read_chunk_size or self.DEFAULT_READ_CHUNK_SIZE

        # Metrics
        self._bytes_sent = 0
        self._bytes_received = 0
        self._chunks_received = 0
        self._started_at: Optional[float] = None

        logger.debug("HTTP/1.1 connection initialized")

    async def handle_request(self, request: Request) -> Response:
        """
        Send a request and receive the response headers.

        The body is left on the wire and is consumed through the
        response stream.

        Args:
            request: The HTTP request to send

        Returns:
            The HTTP response with a streaming body

        Raises:
            StreamError: If the connection was already used or closed
            TransportError: If the network fails
            ProtocolError: If the server violates HTTP/1.1
        """
        if self._state != ConnectionState.NEW:
            raise StreamError(f"Connection cannot send a request in state {self._state.value}")

        self._state = ConnectionState.ACTIVE
        self._started_at = time.time()

        try:
            await self._send_request(request)
            response = await self._receive_response()
        except Exception as e:
            logger.error(f"Request {request.method!r} {request.target!r} failed: {e}")
            await self.close()
            raise

        logger.debug(
            f"{request.method.decode()} {request.url_string} -> {response.status_code} "
            f"({time.time() - self._started_at:.3f}s)"
        )
        return response

    def _build_h11_request(self, request: Request) -> h11.Request:
        """Create the h11 Request event, adding Host and Content-Length when missing."""
        headers: List[Tuple[bytes, bytes]] = list(request.headers)

        if not request.has_header(b"host"):
            host = format_host_header(
                request.host.decode(), request.port, request.scheme.decode()
            )
            headers.insert(0, (b"Host", host.encode()))

        if (
            request.body is not None
            and not request.has_header(b"content-length")
            and not request.has_header(b"transfer-encoding")
        ):
            headers.append((b"Content-Length", str(len(request.body)).encode()))

        return h11.Request(method=request.method, target=request.target, headers=headers)

    async def _send_request(self, request: Request) -> None:
        await self._send_event(self._build_h11_request(request))

        if request.body:
            await self._send_event(h11.Data(data=request.body))

        await self._send_event(h11.EndOfMessage())

    async def _send_event(self, event: Any) -> None:
        """Serialize ``event`` and write it, honoring the write timeout."""
        try:
            data = self._h11_connection.send(event)
        except h11.LocalProtocolError as e:
            raise ProtocolError(f"Invalid request: {e}", cause=e) from e

        if data:
            try:
                await asyncio.wait_for(self._stream.write(data), timeout=self._write_timeout)
            except asyncio.TimeoutError as e:
                raise TransportError(f"Write timed out after {self._write_timeout}s", cause=e) from e
            except (OSError, RuntimeError) as e:
                raise TransportError(f"Write failed: {e}", cause=e) from e
            self._bytes_sent += len(data)

    async def _next_event(self) -> Any:
        """Return the next h11 event, reading from the network as needed."""
        while True:
            try:
                event = self._h11_connection.next_event()
            except h11.RemoteProtocolError as e:
                raise ProtocolError(str(e), cause=e) from e

            if event is not h11.NEED_DATA:
                return event

            if self._eof_received:
                raise ProtocolError("Connection closed unexpectedly")

            try:
                data = await asyncio.wait_for(
                    self._stream.read(self._read_chunk_size),
                    timeout=self._read_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransportError(f"Read timed out after {self._read_timeout}s", cause=e) from e
            except (OSError, RuntimeError) as e:
                raise TransportError(f"Read failed: {e}", cause=e) from e

            if not data:
                # Let h11 decide whether EOF ends the body or is premature
                self._eof_received = True
            self._h11_connection.receive_data(data)
            self._bytes_received += len(data)

    async def _receive_response(self) -> Response:
        """Wait for the final status line, skipping 1xx responses."""
        while True:
            event = await self._next_event()

            if isinstance(event, h11.InformationalResponse):
                continue

            if isinstance(event, h11.Response):
                headers = [(name, value) for name, value in event.headers]
                response_stream = ResponseStream(
                    connection=self,
                    content_length=_content_length(headers),
                    chunked=_is_chunked(headers),
                )

                return Response.create(
                    status_code=event.status_code,
                    headers=headers,
                    stream=response_stream,
                    extensions={"http_version": event.http_version},
                )

            if isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Connection closed by server")

    async def _receive_body_chunk(self) -> Optional[bytes]:
        """Next piece of body as the network delivered it; None at the end."""
        while True:
            event = await self._next_event()

            if isinstance(event, h11.Data):
                self._chunks_received += 1
                return bytes(event.data)

            if isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return None

    async def _response_closed(self) -> None:
        # The body stream is done with us, whether it finished or gave up.
        await self.close()

    async def close(self) -> None:
        """Shut the network stream. A connection is never reused."""
        if self._state == ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        try:
            await self._stream.aclose()
        except (OSError, RuntimeError) as e:
            logger.warning(f"Error closing network stream: {e}")

        logger.debug(
            f"Connection closed after {self._bytes_received} bytes "
            f"in {self._chunks_received} body chunks"
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == ConnectionState.CLOSED

    @property
    def metrics(self) -> Dict[str, Any]:
        """Counters for logging and tests."""
        return {
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
            "chunks_received": self._chunks_received,
            "started_at": self._started_at,
            "state": self._state.value,
        }
