"""
asyncio network backend for event_stream_core.

Production implementation of NetworkBackend on top of asyncio streams.
"""

import asyncio
import logging
import ssl
from typing import Any, Optional

from .backend import NetworkBackend
from .stream import NetworkStream
from .utils import create_ssl_context

logger = logging.getLogger(__name__)


class AsyncioNetworkStream(NetworkStream):
    """Network stream backed by an asyncio StreamReader/StreamWriter pair."""

    DEFAULT_READ_SIZE = 65536

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return await self._reader.read(max_bytes or self.DEFAULT_READ_SIZE)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        host: str,
        timeout: Optional[float] = None,
    ) -> None:
        """Upgrade this stream to TLS in place."""
        await self._writer.start_tls(
            ssl_context,
            server_hostname=host,
            ssl_handshake_timeout=timeout,
        )

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            logger.debug(f"Error while closing stream: {e}")

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed


class AsyncioNetworkBackend(NetworkBackend):
    """Network backend using asyncio.open_connection."""

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None
    ) -> AsyncioNetworkStream:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
        logger.debug(f"TCP connection established to {host}:{port}")
        return AsyncioNetworkStream(reader, writer)

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> AsyncioNetworkStream:
        if not isinstance(stream, AsyncioNetworkStream):
            raise TypeError("AsyncioNetworkBackend can only upgrade its own streams")
        if ssl_context is None:
            ssl_context = create_ssl_context()
        await stream.start_tls(ssl_context, host, timeout)
        logger.debug(f"TLS handshake completed with {host}:{port}")
        return stream
