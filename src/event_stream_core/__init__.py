"""
event_stream_core - Server-Sent Events client transport

Consumes long-lived, newline-framed ``data:`` streams over HTTP/1.1,
decodes each line into a typed message and reports a start / message /
completion lifecycle to the caller.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

from .http_primitives import Request, Response, URLComponents
from .http11 import HTTP11Connection, ConnectionState
from .exceptions import (
    EventStreamError,
    TransportError,
    RedirectError,
    ProtocolError,
    APIError,
    StreamError,
    DecodeError,
)
from .streams import ResponseStream, read_stream_to_bytes, stream_to_list
from .decoding import (
    DecodingConfig,
    JSONMessageDecoder,
    MessageDecoder,
)
from .framing import ErrorBodyBuffer, FramedLine, LineFramer, LinePolicy, parse_error_body
from .challenge import (
    AuthChallenge,
    ChallengeDisposition,
    ChallengeKind,
    ChallengeResponse,
    CredentialChecker,
)
from .credentials import APICredentials
from .transport import StreamTransport
from .session import (
    CompletionOutcome,
    EventStreamSession,
    SessionState,
    StreamCompleted,
    StreamEvent,
    StreamMessage,
    StreamStarted,
    classify_completion,
)

__all__ = [
    "Request",
    "Response",
    "URLComponents",
    "HTTP11Connection",
    "ConnectionState",
    "EventStreamError",
    "TransportError",
    "RedirectError",
    "ProtocolError",
    "APIError",
    "StreamError",
    "DecodeError",
    "ResponseStream",
    "read_stream_to_bytes",
    "stream_to_list",
    "DecodingConfig",
    "JSONMessageDecoder",
    "MessageDecoder",
    "FramedLine",
    "LineFramer",
    "LinePolicy",
    "parse_error_body",
    "ErrorBodyBuffer",
    "AuthChallenge",
    "ChallengeDisposition",
    "ChallengeKind",
    "ChallengeResponse",
    "CredentialChecker",
    "APICredentials",
    "StreamTransport",
    "CompletionOutcome",
    "EventStreamSession",
    "SessionState",
    "StreamCompleted",
    "StreamEvent",
    "StreamMessage",
    "StreamStarted",
    "classify_completion",
]
