"""
Sockets, TLS upgrades and test doubles for event_stream_core.
"""

from .backend import NetworkBackend
from .stream import NetworkStream
from .asyncio_backend import AsyncioNetworkBackend, AsyncioNetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    create_ssl_context,
    default_port,
    format_host_header,
    parse_url,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "create_ssl_context",
    "default_port",
    "format_host_header",
    "parse_url",
]
