"""
Event stream session.

EventStreamSession owns one long-lived HTTP connection and reports its
lifecycle to three observers: start (once, when the response arrives),
message (once per framed body line) and complete (exactly once). All
observer calls for a session are made from a single worker task, so they
are never concurrent with each other; the caller only schedules the work
and is free while the stream runs.

Typical use::

    session = EventStreamSession(request, JSONMessageDecoder(Chunk))
    session.on_start(started).on_message(received).on_complete(finished)
    session.start()
    ...
    session.stop()

or, as a channel of tagged events::

    async for event in session.events():
        ...
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    AsyncIterator,
    Callable,
    Generic,
    List,
    Optional,
    TypeVar,
    Union,
)

from .decoding import MessageDecoder
from .exceptions import APIError, EventStreamError, StreamError, TransportError
from .framing import ErrorBodyBuffer, FramedLine, LineFramer, LinePolicy
from .challenge import CredentialChecker
from .http_primitives import Request
from .network import NetworkBackend
from .transport import StreamTransport

logger = logging.getLogger(__name__)

M = TypeVar("M")

StartObserver = Callable[[], None]
MessageObserver = Callable[[bytes, Optional[M]], None]
CompleteObserver = Callable[[Optional[int], bool, Optional[Exception]], None]


class SessionState(Enum):
    """Lifecycle of a session. A session never leaves TERMINATED."""
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class CompletionOutcome:
    """
    How a stream ended.

    Attributes:
        status_code: HTTP status of the final response, None when no
            response was received, 0 when the caller stopped the stream
        forced: True only when the caller stopped the stream
        error: Transport or protocol error, None on success
    """
    status_code: Optional[int]
    forced: bool = False
    error: Optional[Exception] = None

    @classmethod
    def forced_stop(cls) -> "CompletionOutcome":
        return cls(status_code=0, forced=True, error=None)

    @property
    def succeeded(self) -> bool:
        return self.error is None


def classify_completion(
    status_code: Optional[int],
    transport_error: Optional[Exception] = None,
    body_error: Optional[APIError] = None,
) -> CompletionOutcome:
    """
    Derive the outcome of a stream that ended on its own.

    The error reported is the transport error if there is one, then an
    error body received with a failed status, then an error synthesized
    from a status of 400 or above.
    """
    if status_code is None:
        return CompletionOutcome(status_code=None, forced=False, error=transport_error or body_error)

    error: Optional[Exception] = transport_error or body_error
    if error is None and status_code >= 400:
        error = APIError.from_status(status_code)

    return CompletionOutcome(status_code=status_code, forced=False, error=error)


@dataclass(frozen=True)
class StreamStarted:
    """The response arrived and the stream is active."""
    is_finished = False
    force_end = False


@dataclass(frozen=True)
class StreamMessage(Generic[M]):
    """One framed line: the raw chunk and the decoded message, if any."""
    data: bytes
    message: Optional[M] = None
    is_finished = False
    force_end = False


@dataclass(frozen=True)
class StreamCompleted:
    """The stream ended; always the last event."""
    outcome: CompletionOutcome
    is_finished = True

    @property
    def force_end(self) -> bool:
        return self.outcome.forced


StreamEvent = Union[StreamStarted, StreamMessage, StreamCompleted]


class EventStreamSession(Generic[M]):
    """
    A single server-sent event stream.

    The session is not reusable: once it is terminated, ``start`` does
    nothing. Errors of the stream never propagate out of ``start`` or
    ``stop``; they reach the caller only through the complete observer.
    """

    DEFAULT_MAX_REDIRECTS = StreamTransport.DEFAULT_MAX_REDIRECTS
    DEFAULT_READ_CHUNK_SIZE = StreamTransport.DEFAULT_READ_CHUNK_SIZE

    def __init__(
        self,
        request: Request,
        decoder: MessageDecoder[M],
        *,
        credential_checker: Optional[CredentialChecker] = None,
        backend: Optional[NetworkBackend] = None,
        on_start: Optional[StartObserver] = None,
        on_message: Optional[MessageObserver] = None,
        on_complete: Optional[CompleteObserver] = None,
        line_policy: LinePolicy = LinePolicy.EVERY_LINE,
        buffer_partial_lines: bool = True,
        max_redirects: Optional[int] = None,
        connect_timeout: Optional[float] = None,
        read_chunk_size: Optional[int] = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            request: Fully-formed request prepared by the caller
            decoder: Decoder for the payload of ``data:`` lines
            credential_checker: Optional collaborator for authentication challenges
            backend: Network backend, asyncio streams by default
            on_start: Called once when the response arrives
            on_message: Called with (raw chunk, message or None) per framed line
            on_complete: Called once with (status code, forced, error)
            line_policy: Whether lines without the data prefix produce events
            buffer_partial_lines: Join lines split across network reads
            max_redirects: Redirects followed before failing
            connect_timeout: Timeout for connecting, None for none
            read_chunk_size: Maximum bytes requested per network read
        """
        self._request = request
        self._decoder = decoder
        self._credential_checker = credential_checker
        self._backend = backend
        self._on_start = on_start
        self._on_message = on_message
        self._on_complete = on_complete
        self._line_policy = line_policy
        self._buffer_partial_lines = buffer_partial_lines
        self._max_redirects = max_redirects
        self._connect_timeout = connect_timeout
        self._read_chunk_size = read_chunk_size

        self._state = SessionState.IDLE
        self._active = False
        self._status_code: Optional[int] = None
        self._last_transport_error: Optional[APIError] = None
        self._outcome: Optional[CompletionOutcome] = None
        self._worker: Optional["asyncio.Task[None]"] = None
        self._closed = asyncio.Event()

    # Observer registration

    def on_start(self, observer: StartObserver) -> "EventStreamSession[M]":
        self._on_start = observer
        return self

    def on_message(self, observer: MessageObserver) -> "EventStreamSession[M]":
        self._on_message = observer
        return self

    def on_complete(self, observer: CompleteObserver) -> "EventStreamSession[M]":
        self._on_complete = observer
        return self

    # Lifecycle

    def start(self) -> None:
        """
        Open the stream in the background.

        Does nothing unless the session is idle. Must be called from a
        running event loop.

        Raises:
            StreamError: If an observer is missing
        """
        if self._state is not SessionState.IDLE:
            logger.debug(f"start() ignored in state {self._state.value}")
            return

        missing = [
            name
            for name, observer in (
                ("on_start", self._on_start),
                ("on_message", self._on_message),
                ("on_complete", self._on_complete),
            )
            if observer is None
        ]
        if missing:
            raise StreamError(f"Observers must be registered before start: {', '.join(missing)}")

        loop = asyncio.get_running_loop()
        transport = StreamTransport(
            backend=self._backend,
            credential_checker=self._credential_checker,
            max_redirects=self._max_redirects,
            connect_timeout=self._connect_timeout,
            read_chunk_size=self._read_chunk_size,
        )
        self._state = SessionState.CONNECTING
        self._worker = loop.create_task(self._run(transport))
        logger.debug(f"Stream to {self._request.url_string} scheduled")

    def stop(self) -> None:
        """
        Force the stream to end.

        Cancels the connection and any pending delivery, then reports
        ``(0, True, None)`` to the complete observer before returning.
        Anything the transport reports afterwards is discarded. Does
        nothing once the session is terminated.
        """
        if self._state is SessionState.TERMINATED:
            return

        self._active = False
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()

        logger.debug(f"Stream to {self._request.url_string} stopped by caller")
        self._finish(CompletionOutcome.forced_stop())

    async def wait_closed(self) -> CompletionOutcome:
        """Wait until the session terminates and return its outcome."""
        await self._closed.wait()
        if self._outcome is None:
            raise StreamError("Session closed without an outcome")
        return self._outcome

    async def events(self) -> AsyncIterator[StreamEvent]:
        """
        Run the stream and yield its lifecycle as tagged events.

        Replaces the registered observers and starts the session. The last
        event is always StreamCompleted. Closing the iterator early stops
        the session.

        Raises:
            StreamError: If the session was already started
        """
        if self._state is not SessionState.IDLE:
            raise StreamError("events() requires an idle session")

        queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self.on_start(lambda: queue.put_nowait(StreamStarted()))
        self.on_message(lambda data, message: queue.put_nowait(StreamMessage(data, message)))
        self.on_complete(
            lambda status_code, forced, error: queue.put_nowait(
                StreamCompleted(CompletionOutcome(status_code, forced, error))
            )
        )
        self.start()

        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, StreamCompleted):
                    return
        finally:
            self.stop()

    # Worker

    async def _run(self, transport: StreamTransport) -> None:
        error: Optional[Exception] = None
        try:
            async with transport:
                response = await transport.open(self._request)
                if self._state is SessionState.TERMINATED:
                    return

                self._status_code = response.status_code
                self._enter_active()

                framer: LineFramer[M] = LineFramer(
                    self._decoder,
                    policy=self._line_policy,
                    buffer_partial_lines=self._buffer_partial_lines,
                )
                error_body = None if response.is_success else ErrorBodyBuffer()
                async for chunk in transport.iter_body():
                    if not self._active:
                        break
                    self._handle_chunk(framer, error_body, chunk)

                if self._active:
                    if error_body is not None:
                        self._frame_chunks(framer, error_body.release())
                    self._deliver_messages(framer.flush())
        except EventStreamError as e:
            error = e
        except OSError as e:
            error = TransportError(str(e), cause=e)
        except Exception as e:
            logger.error(f"Stream to {self._request.url_string} failed unexpectedly: {e}")
            error = StreamError(f"Unexpected failure: {e}", cause=e)

        self._complete(error)

    def _enter_active(self) -> None:
        self._state = SessionState.ACTIVE
        self._active = True
        logger.debug(f"Stream to {self._request.url_string} active with status {self._status_code}")
        try:
            self._on_start()
        except Exception as e:
            logger.warning(f"on_start observer failed: {e}")

    def _handle_chunk(
        self,
        framer: LineFramer[M],
        error_body: Optional[ErrorBodyBuffer],
        chunk: bytes,
    ) -> None:
        if error_body is None:
            self._deliver_messages(framer.feed(chunk))
            return

        payload, released = error_body.feed(chunk)
        if payload is not None:
            self._last_transport_error = APIError.from_payload(self._status_code, payload)
            logger.debug(f"Error body received with status {self._status_code}: {payload}")
        self._frame_chunks(framer, released)

    def _frame_chunks(self, framer: LineFramer[M], chunks: List[bytes]) -> None:
        for chunk in chunks:
            if not self._active:
                return
            self._deliver_messages(framer.feed(chunk))

    def _deliver_messages(self, lines: List[FramedLine[M]]) -> None:
        for framed in lines:
            # stop() may be called from inside an observer
            if not self._active:
                return
            try:
                self._on_message(framed.data, framed.message)
            except Exception as e:
                logger.warning(f"on_message observer failed: {e}")

    def _complete(self, error: Optional[Exception]) -> None:
        if self._state is SessionState.TERMINATED:
            return
        self._finish(
            classify_completion(
                self._status_code,
                transport_error=error,
                body_error=self._last_transport_error,
            )
        )

    def _finish(self, outcome: CompletionOutcome) -> None:
        self._state = SessionState.TERMINATED
        self._active = False
        self._outcome = outcome
        self._closed.set()

        logger.debug(
            f"Stream to {self._request.url_string} completed: status={outcome.status_code} "
            f"forced={outcome.forced} error={outcome.error!r}"
        )

        if self._on_complete is None:
            return
        try:
            self._on_complete(outcome.status_code, outcome.forced, outcome.error)
        except Exception as e:
            logger.warning(f"on_complete observer failed: {e}")

    # Introspection

    @property
    def request(self) -> Request:
        return self._request

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def status_code(self) -> Optional[int]:
        return self._status_code

    @property
    def last_transport_error(self) -> Optional[APIError]:
        """The error body recorded while the stream was active, if any."""
        return self._last_transport_error

    @property
    def outcome(self) -> Optional[CompletionOutcome]:
        return self._outcome
