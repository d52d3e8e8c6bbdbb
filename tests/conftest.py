"""
Pytest configuration for event_stream_core tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import pytest

from event_stream_core.http_primitives import Request
from event_stream_core.network.mock import MockNetworkBackend


HOST = "api.example.com"
PORT = 80


@dataclass
class Chunk:
    """Message type used by the session tests."""
    id: int
    text: Optional[str] = None


class Recorder:
    """Collects observer calls of a session in order."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.first_message = asyncio.Event()

    def on_start(self) -> None:
        self.calls.append(("start",))

    def on_message(self, data: bytes, message: Any) -> None:
        self.calls.append(("message", data, message))
        self.first_message.set()

    def on_complete(self, status_code: Optional[int], forced: bool, error: Optional[Exception]) -> None:
        self.calls.append(("complete", status_code, forced, error))

    def attach(self, session):
        return (
            session.on_start(self.on_start)
            .on_message(self.on_message)
            .on_complete(self.on_complete)
        )

    @property
    def kinds(self) -> List[str]:
        return [call[0] for call in self.calls]

    @property
    def messages(self) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == "message"]

    @property
    def completions(self) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == "complete"]


def response_head(
    status_code: int = 200,
    reason: str = "OK",
    headers: Sequence[Tuple[str, str]] = (("Content-Type", "text/event-stream"),),
) -> bytes:
    """Build the status line and headers of an HTTP/1.1 response."""
    lines = [f"HTTP/1.1 {status_code} {reason}"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    return ("\r\n".join(lines) + "\r\n\r\n").encode()


@pytest.fixture
def backend():
    """A mock network backend with nothing scripted yet."""
    return MockNetworkBackend()


@pytest.fixture
def recorder():
    """Records observer calls."""
    return Recorder()


@pytest.fixture
def stream_request():
    """A prepared streaming request for the mock host."""
    return Request.create(
        method="POST",
        url=f"http://{HOST}/v1/chat/completions",
        headers={"Authorization": "Bearer token123", "content-type": "application/json"},
        body=b'{"stream": true}',
    )


@pytest.fixture
def sample_headers():
    """Sample headers for testing."""
    return [
        (b"Content-Type", b"application/json"),
        (b"Authorization", b"Bearer token123"),
        (b"User-Agent", b"event_stream_core/0.1.0"),
        (b"Accept", b"*/*"),
    ]
