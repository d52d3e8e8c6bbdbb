"""
Connection factory interface for event_stream_core.

A backend opens the byte streams an HTTP/1.1 connection runs over. The
transport layer only ever asks for a plain TCP stream and, for https
targets, a TLS upgrade of that same stream.
"""

import ssl
from abc import ABC, abstractmethod
from typing import Optional
from .stream import NetworkStream


class NetworkBackend(ABC):
    """
    Opens and secures network streams for the transport.

    Implementations: AsyncioNetworkBackend for real sockets,
    MockNetworkBackend for scripted tests.
    """

    @abstractmethod
    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None
    ) -> NetworkStream:
        """
        Open a TCP stream to ``host:port``.

        Args:
            host: Name or address of the server.
            port: Server port.
            timeout: Seconds allowed for the connect, or None to wait forever.

        Raises:
            OSError: The server could not be reached.
            asyncio.TimeoutError: The connect took longer than ``timeout``.
        """
        pass

    @abstractmethod
    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """
        Run the TLS handshake over an open TCP stream.

        Args:
            stream: Stream returned by ``connect_tcp``.
            host: Server name checked against the certificate.
            port: Server port, for diagnostics.
            timeout: Seconds allowed for the handshake.
            ssl_context: Trust settings; the platform default when None.

        Raises:
            ssl.SSLError: The handshake or certificate check failed.
            asyncio.TimeoutError: The handshake took longer than ``timeout``.
        """
        pass
