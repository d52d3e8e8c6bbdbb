"""
Custom exceptions for event_stream_core.

This module defines the exception hierarchy used throughout
the library. Transport and protocol failures of a running stream
are never raised to the caller; they are handed to the completion
observer of the session instead.
"""

from typing import Any, Dict, Optional


class EventStreamError(Exception):
    """Base exception for all event_stream_core errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class TransportError(EventStreamError):
    """Raised when the connection itself fails (DNS, TLS, reset, timeout)."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Transport error: {message}", cause)


class RedirectError(TransportError):
    """Raised when a redirect chain cannot be followed."""


class ProtocolError(EventStreamError):
    """Raised when the server violates the HTTP/1.1 protocol."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Protocol error: {message}", cause)


class APIError(EventStreamError):
    """
    Raised for protocol-level failures reported by the API.

    Either decoded from an error body (``{"error": {...}}``) sent with a
    non-2xx status, or synthesized from the status code alone.
    """

    GENERIC_MESSAGE = "Text generation failed"
    ACCESS_DENIED_MESSAGE = "Access denied"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @classmethod
    def from_status(cls, status_code: int) -> "APIError":
        """Synthesize an error for a failed status with no usable body."""
        if status_code == 403:
            return cls(cls.ACCESS_DENIED_MESSAGE, status_code=status_code)
        return cls(cls.GENERIC_MESSAGE, status_code=status_code)

    @classmethod
    def from_payload(cls, status_code: int, payload: Dict[str, Any]) -> "APIError":
        """Build an error from a decoded ``{"error": ...}`` body."""
        error = payload.get("error")
        message = None
        if isinstance(error, dict):
            message = error.get("message")
        elif isinstance(error, str):
            message = error
        if not isinstance(message, str) or not message:
            message = cls.GENERIC_MESSAGE
        return cls(message, status_code=status_code, payload=payload)

    def __repr__(self) -> str:
        return f"APIError(status_code={self.status_code!r}, message={self.message!r})"


class StreamError(EventStreamError):
    """Raised when a stream or session is used incorrectly."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Stream error: {message}", cause)


class DecodeError(EventStreamError):
    """Raised by message decoders when a payload cannot be decoded."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Decode error: {message}", cause)
