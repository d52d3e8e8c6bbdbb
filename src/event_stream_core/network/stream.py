"""
Byte stream interface for event_stream_core.

The HTTP layer reads and writes through NetworkStream only, so it runs
unchanged over a real socket or an in-memory test double.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class NetworkStream(ABC):
    """
    One open, bidirectional byte stream.

    A stream belongs to a single HTTP connection and is never shared
    between sessions.
    """

    @abstractmethod
    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Return the next bytes available, at most ``max_bytes`` of them.

        An empty result means the peer closed its side.

        Raises:
            RuntimeError: The stream was already closed locally.
            OSError: The network failed.
        """
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Send ``data`` and wait until it is flushed.

        Raises:
            RuntimeError: The stream was already closed locally.
            OSError: The network failed.
        """
        pass

    @abstractmethod
    async def aclose(self) -> None:
        """Close the stream. Repeated calls are allowed."""
        pass

    @abstractmethod
    def get_extra_info(self, name: str) -> Optional[Any]:
        """
        Look up transport details such as ``"peername"``, ``"sockname"``
        or ``"ssl_object"``; None when the detail is unknown.
        """
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass
