"""
Connection setup for event streams.

StreamTransport turns a prepared request into an open streaming response:
it adds the event-stream headers, connects (with TLS for https), answers
authentication challenges through the credential checker and follows
redirects up to a fixed bound. Every transport is used for exactly one
stream; intermediate connections (redirects, rejected credentials) are
closed as soon as they are answered and the final one is closed by
``aclose``.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional
from urllib.parse import urljoin, urlparse

from .challenge import (
    AuthChallenge,
    ChallengeDisposition,
    ChallengeKind,
    CredentialChecker,
    resolve_challenge,
)
from .exceptions import RedirectError, StreamError, TransportError
from .http11 import HTTP11Connection
from .http_primitives import Request, Response
from .network import AsyncioNetworkBackend, NetworkBackend, NetworkStream, create_ssl_context

logger = logging.getLogger(__name__)


class StreamTransport:
    """
    One-shot HTTP/1.1 transport for a single event stream.

    Usable as an async context manager; leaving the context closes
    whatever connection is still open.
    """

    DEFAULT_MAX_REDIRECTS = 10
    DEFAULT_MAX_AUTH_ATTEMPTS = 3
    DEFAULT_CONNECT_TIMEOUT: Optional[float] = None
    DEFAULT_READ_CHUNK_SIZE = 65536

    STREAM_HEADERS = (
        (b"Accept", b"text/event-stream"),
        (b"Cache-Control", b"no-cache"),
    )

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        credential_checker: Optional[CredentialChecker] = None,
        max_redirects: Optional[int] = None,
        connect_timeout: Optional[float] = None,
        read_chunk_size: Optional[int] = None,
        max_auth_attempts: Optional[int] = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            backend: Network backend, asyncio streams by default
            credential_checker: Optional collaborator for TLS and 401 challenges
            max_redirects: Redirects followed before giving up
            connect_timeout: Timeout for TCP connect and TLS handshake, None for none
            read_chunk_size: Maximum bytes requested per network read
            max_auth_attempts: Credentials offered for 401 challenges before the
                401 response is accepted as final
        """
        self._backend = backend or AsyncioNetworkBackend()
        self._credential_checker = credential_checker
        self._max_redirects = self.DEFAULT_MAX_REDIRECTS if max_redirects is None else max_redirects
        self._connect_timeout = connect_timeout if connect_timeout is not None else self.DEFAULT_CONNECT_TIMEOUT
        self._read_chunk_size = read_chunk_size or self.DEFAULT_READ_CHUNK_SIZE
        self._max_auth_attempts = (
            self.DEFAULT_MAX_AUTH_ATTEMPTS if max_auth_attempts is None else max_auth_attempts
        )

        self._connection: Optional[HTTP11Connection] = None
        self._response: Optional[Response] = None
        self._redirect_count = 0
        self._opened = False
        self._closed = False

    def prepare_request(self, request: Request) -> Request:
        """Add the event-stream headers the request does not set itself."""
        for name, value in self.STREAM_HEADERS:
            if not request.has_header(name):
                request = request.add_header(name, value)
        return request

    async def open(self, request: Request) -> Response:
        """
        Send the request and return the final response.

        The body of the returned response has not been read yet; consume
        it with ``iter_body``.

        Raises:
            StreamError: If the transport was already opened or closed
            TransportError: If connecting fails or a challenge is cancelled
            RedirectError: If the redirect bound is exceeded
            ProtocolError: If the server violates HTTP/1.1
        """
        if self._closed:
            raise StreamError("Transport is closed")
        if self._opened:
            raise StreamError("Transport is already open")
        self._opened = True

        request = self.prepare_request(request)
        auth_failures = 0

        while True:
            response = await self._send(request)

            if response.status_code == 401 and self._credential_checker is not None:
                authorization = self._answer_http_challenge(request, response, auth_failures)
                if authorization is not None and auth_failures < self._max_auth_attempts:
                    auth_failures += 1
                    await self._close_connection()
                    request = request.set_header(b"Authorization", authorization)
                    continue

            if response.is_redirect:
                request = self._follow_redirect(request, response)
                await self._close_connection()
                continue

            self._response = response
            return response

    async def iter_body(self) -> AsyncIterator[bytes]:
        """Yield the body chunks of the final response in arrival order."""
        if self._response is None or self._response.stream is None:
            raise StreamError("Transport is not open")

        async for chunk in self._response.stream:
            yield chunk

    async def aclose(self) -> None:
        """Close the open connection, if any. Safe to call repeatedly."""
        self._closed = True
        await self._close_connection()

    async def _send(self, request: Request) -> Response:
        stream = await self._connect(request)
        self._connection = HTTP11Connection(stream, read_chunk_size=self._read_chunk_size)
        return await self._connection.handle_request(request)

    async def _connect(self, request: Request) -> NetworkStream:
        scheme = request.scheme.decode()
        host = request.host.decode()
        port = request.port

        try:
            stream = await self._backend.connect_tcp(host, port, timeout=self._connect_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Connection to {host}:{port} timed out", cause=e) from e
        except OSError as e:
            raise TransportError(f"Cannot connect to {host}:{port}: {e}", cause=e) from e

        if scheme != "https":
            return stream

        answer = resolve_challenge(
            self._credential_checker,
            AuthChallenge(kind=ChallengeKind.SERVER_TRUST, host=host, port=port, scheme=scheme),
        )
        if answer.disposition is ChallengeDisposition.CANCEL:
            await stream.aclose()
            raise TransportError(f"Server trust challenge for {host} was cancelled")

        ssl_context = None
        if answer.disposition is ChallengeDisposition.USE_CREDENTIAL:
            ssl_context = answer.ssl_context
        if ssl_context is None:
            ssl_context = create_ssl_context()

        try:
            return await self._backend.connect_tls(
                stream, host, port, timeout=self._connect_timeout, ssl_context=ssl_context
            )
        except asyncio.TimeoutError as e:
            await stream.aclose()
            raise TransportError(f"TLS handshake with {host}:{port} timed out", cause=e) from e
        except OSError as e:
            await stream.aclose()
            raise TransportError(f"TLS handshake with {host}:{port} failed: {e}", cause=e) from e

    def _answer_http_challenge(
        self,
        request: Request,
        response: Response,
        previous_failures: int,
    ) -> Optional[str]:
        """Return the Authorization value to retry with, or None to keep the 401."""
        www_authenticate = response.get_header(b"www-authenticate")
        challenge = AuthChallenge(
            kind=ChallengeKind.HTTP_AUTH,
            host=request.host.decode(),
            port=request.port,
            scheme=request.scheme.decode(),
            www_authenticate=www_authenticate.decode("latin-1") if www_authenticate else None,
            previous_failure_count=previous_failures,
        )
        answer = resolve_challenge(self._credential_checker, challenge)

        if answer.disposition is ChallengeDisposition.CANCEL:
            raise TransportError(f"Authentication challenge for {challenge.host} was cancelled")
        if answer.disposition is ChallengeDisposition.USE_CREDENTIAL:
            return answer.authorization
        return None

    def _follow_redirect(self, request: Request, response: Response) -> Request:
        """Build the request for the next hop of a redirect chain."""
        self._redirect_count += 1
        if self._redirect_count > self._max_redirects:
            raise RedirectError(f"Exceeded {self._max_redirects} redirects")

        location = response.get_header(b"location").decode("latin-1")
        url = urljoin(request.url_string, location)
        if urlparse(url).scheme not in ("http", "https"):
            raise RedirectError(f"Cannot follow redirect to {url}")

        logger.debug(f"Following {response.status_code} redirect to {url}")

        try:
            new_request = request.with_url(url).remove_header(b"host")
        except ValueError as e:
            raise RedirectError(f"Cannot follow redirect to {url}: {e}") from e
        if response.status_code == 303 and new_request.method != b"HEAD":
            new_request = (
                new_request.with_method("GET")
                .with_body(None)
                .remove_header(b"content-length")
                .remove_header(b"content-type")
            )
        return new_request

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

    @property
    def response(self) -> Optional[Response]:
        return self._response

    @property
    def redirect_count(self) -> int:
        return self._redirect_count

    async def __aenter__(self) -> "StreamTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
