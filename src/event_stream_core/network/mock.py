"""
In-memory network doubles for tests.

Servers are scripted per host as a sequence of byte chunks which the mock
stream hands out one read at a time, so tests control exactly how the
response is split across network reads.
"""

import asyncio
import ssl
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple, Union

from .stream import NetworkStream
from .backend import NetworkBackend


class MockNetworkStream(NetworkStream):
    """
    Scripted in-memory stream.

    Each queued chunk is returned by a separate read. With ``hold_open``
    set, a read on an empty stream waits for ``add_data`` or ``feed_eof``
    instead of reporting end of stream.
    """

    def __init__(
        self,
        data: bytes = b"",
        chunks: Optional[Iterable[bytes]] = None,
        hold_open: bool = False,
    ):
        """
        Args:
            data: Bytes readable right away, as a single chunk.
            chunks: Initial chunks, each returned by its own read.
            hold_open: Keep the stream open once the queued data is consumed.
        """
        self._chunks: Deque[bytes] = deque()
        if data:
            self._chunks.append(data)
        for chunk in chunks or ():
            self._chunks.append(chunk)
        self._hold_open = hold_open
        self._eof = False
        self._closed = False
        self._data_available = asyncio.Event()
        self._extra_info: Dict[str, Any] = {}
        self._write_buffer: List[bytes] = []
        self.read_count = 0

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """Next queued chunk, split when it exceeds ``max_bytes``."""
        while True:
            if self._closed:
                raise RuntimeError("Stream is closed")

            if self._chunks:
                chunk = self._chunks.popleft()
                if max_bytes is not None and len(chunk) > max_bytes:
                    self._chunks.appendleft(chunk[max_bytes:])
                    chunk = chunk[:max_bytes]
                self.read_count += 1
                return chunk

            if not self._hold_open or self._eof:
                return b""

            self._data_available.clear()
            await self._data_available.wait()

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock stream.

        Raises:
            RuntimeError: If the stream is closed.
        """
        if self._closed:
            raise RuntimeError("Stream is closed")

        self._write_buffer.append(data)

    async def aclose(self) -> None:
        """Close the mock stream."""
        self._closed = True
        self._data_available.set()

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Everything the client wrote, concatenated."""
        return b"".join(self._write_buffer)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """
        Queue data to be returned by a later read.

        Args:
            data: The data to add.
        """
        self._chunks.append(data)
        self._data_available.set()

    def feed_eof(self) -> None:
        """Signal that the peer closed the connection."""
        self._eof = True
        self._data_available.set()


class MockNetworkBackend(NetworkBackend):
    """
    Backend that hands out scripted streams instead of sockets.

    Each call to connect_tcp consumes the next scripted stream (or
    scripted failure) for that host and port.
    """

    def __init__(self):
        """Start with no scripted servers."""
        self._scripts: Dict[Tuple[str, int], Deque[Union[MockNetworkStream, BaseException]]] = defaultdict(deque)
        self.connections: List[Tuple[str, int]] = []
        self.streams: List[MockNetworkStream] = []
        self.tls_contexts: List[Optional[ssl.SSLContext]] = []

    def add_stream(self, host: str, port: int, stream: MockNetworkStream) -> MockNetworkStream:
        """Script the stream returned by the next connection to host:port."""
        self._scripts[(host, port)].append(stream)
        return stream

    def add_response(
        self,
        host: str,
        port: int,
        chunks: Iterable[bytes],
        hold_open: bool = False,
    ) -> MockNetworkStream:
        """Script a server that answers with the given chunks."""
        return self.add_stream(host, port, MockNetworkStream(chunks=chunks, hold_open=hold_open))

    def fail_connect(self, host: str, port: int, error: BaseException) -> None:
        """Script a failure for the next connection to host:port."""
        self._scripts[(host, port)].append(error)

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None
    ) -> MockNetworkStream:
        """
        Create a mock TCP connection.

        Raises:
            ConnectionRefusedError: If nothing was scripted for host:port.
        """
        key = (host, port)
        self.connections.append(key)

        script = self._scripts.get(key)
        if not script:
            raise ConnectionRefusedError(f"No mock server for {host}:{port}")

        entry = script.popleft()
        if isinstance(entry, BaseException):
            raise entry

        entry.set_extra_info("peername", key)
        entry.set_extra_info("sockname", ("127.0.0.1", 12345))
        self.streams.append(entry)
        return entry

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """Mark the mock stream as TLS and record the context used."""
        self.tls_contexts.append(ssl_context)
        if isinstance(stream, MockNetworkStream):
            stream.set_extra_info("ssl_object", True)
        return stream

    def reset(self) -> None:
        """Forget every scripted server and recorded connection."""
        self._scripts.clear()
        self.connections.clear()
        self.streams.clear()
        self.tls_contexts.clear()
