"""
Request and response values for event_stream_core.

A Request is built once by the caller and handed to a session; the
transport derives new requests from it (redirect targets, Authorization
retries) without ever mutating the original. Headers are kept as an
ordered list of byte pairs, the shape h11 consumes.
"""

from typing import (
    Any,
    AsyncIterable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
    NamedTuple,
)
from dataclasses import dataclass, field, replace
from .network.utils import parse_url


Headers = List[Tuple[bytes, bytes]]
HeaderInput = Union[Headers, Mapping[str, str], Mapping[bytes, bytes]]
URL = Tuple[bytes, bytes, int, bytes]  # (scheme, host, port, target)
StatusCode = int

DEFAULT_PORTS = {b"http": 80, b"https": 443}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("latin-1")
    return value


def _encode_body(body: Optional[Union[str, bytes]]) -> Optional[bytes]:
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def normalize_headers(headers: Optional[HeaderInput]) -> Headers:
    """Turn a mapping or a list of pairs into ``[(bytes, bytes), ...]``."""
    if headers is None:
        return []
    items = headers.items() if isinstance(headers, Mapping) else headers
    return [(_to_bytes(name), _to_bytes(value)) for name, value in items]


def find_header(headers: Headers, name: Union[str, bytes]) -> Optional[bytes]:
    """First value stored under ``name``, compared case-insensitively."""
    wanted = _to_bytes(name).lower()
    for header_name, header_value in headers:
        if header_name.lower() == wanted:
            return header_value
    return None


def _without_header(headers: Headers, name: bytes) -> Headers:
    unwanted = name.lower()
    return [pair for pair in headers if pair[0].lower() != unwanted]


def _check_headers(headers: Any) -> None:
    if not isinstance(headers, list):
        raise ValueError("headers must be a list")
    for name, value in headers:
        if not isinstance(name, bytes) or not isinstance(value, bytes):
            raise ValueError("header names and values must be bytes")


class URLComponents(NamedTuple):
    """Parsed absolute URL in the byte form used by requests."""
    scheme: bytes
    host: bytes
    port: int
    target: bytes

    @classmethod
    def from_url(cls, url: str) -> "URLComponents":
        """
        Parse ``url``; a bare ``host/path`` is read as http.

        Raises ValueError when the URL names no host.
        """
        if "://" not in url:
            url = f"http://{url}"
        scheme, host, port, target = parse_url(url)
        return cls(scheme=scheme.encode(), host=host.encode(), port=port, target=target.encode())

    def to_tuple(self) -> URL:
        return (self.scheme, self.host, self.port, self.target)

    def to_string(self) -> str:
        scheme = self.scheme.decode()
        host = self.host.decode()
        if ":" in host:
            host = f"[{host}]"
        if DEFAULT_PORTS.get(self.scheme) != self.port:
            host = f"{host}:{self.port}"
        return f"{scheme}://{host}{self.target.decode()}"


def _convert_url(url: Union[str, URL, URLComponents]) -> URL:
    if isinstance(url, str):
        return URLComponents.from_url(url).to_tuple()
    if isinstance(url, URLComponents):
        return url.to_tuple()
    if not isinstance(url, tuple):
        raise ValueError("url must be string, URLComponents, or URL tuple")
    return url


@dataclass(frozen=True)
class Request:
    """
    A fully-formed request: method, URL, headers and optional body.

    Every ``with_*`` and header helper returns a new Request.
    """

    method: bytes
    url: URL
    headers: Headers = field(default_factory=list)
    body: Optional[bytes] = None

    def __post_init__(self) -> None:
        if not isinstance(self.method, bytes):
            raise ValueError("method must be bytes")

        if not isinstance(self.url, tuple) or len(self.url) != 4:
            raise ValueError("url must be a 4-tuple (scheme, host, port, target)")
        scheme, host, port, target = self.url
        if not (isinstance(scheme, bytes) and isinstance(host, bytes) and isinstance(target, bytes)):
            raise ValueError("URL components must be bytes")
        if not isinstance(port, int):
            raise ValueError("URL port must be int")

        _check_headers(self.headers)

        if self.body is not None and not isinstance(self.body, bytes):
            raise ValueError("body must be bytes")

    @classmethod
    def create(
        cls,
        method: Union[str, bytes],
        url: Union[str, URL, URLComponents],
        headers: Optional[HeaderInput] = None,
        body: Optional[Union[str, bytes]] = None,
    ) -> "Request":
        """
        Build a Request from friendly inputs.

        ``method`` and header strings are encoded, ``url`` may be a string,
        a URLComponents or a URL tuple, and a string ``body`` is sent as UTF-8.
        """
        return cls(
            method=_to_bytes(method),
            url=_convert_url(url),
            headers=normalize_headers(headers),
            body=_encode_body(body),
        )

    def with_method(self, method: Union[str, bytes]) -> "Request":
        return replace(self, method=_to_bytes(method))

    def with_url(self, url: Union[str, URL, URLComponents]) -> "Request":
        return replace(self, url=_convert_url(url))

    def with_headers(self, headers: HeaderInput) -> "Request":
        return replace(self, headers=normalize_headers(headers))

    def with_body(self, body: Optional[Union[str, bytes]]) -> "Request":
        return replace(self, body=_encode_body(body))

    def add_header(self, name: Union[str, bytes], value: Union[str, bytes]) -> "Request":
        """Append a header, keeping any existing ones with the same name."""
        return replace(self, headers=self.headers + [(_to_bytes(name), _to_bytes(value))])

    def set_header(self, name: Union[str, bytes], value: Union[str, bytes]) -> "Request":
        """Replace every header with this name (case-insensitive) by a single value."""
        name = _to_bytes(name)
        headers = _without_header(self.headers, name)
        headers.append((name, _to_bytes(value)))
        return replace(self, headers=headers)

    def remove_header(self, name: Union[str, bytes]) -> "Request":
        """Drop every header with this name (case-insensitive)."""
        return replace(self, headers=_without_header(self.headers, _to_bytes(name)))

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        return find_header(self.headers, name)

    def has_header(self, name: Union[str, bytes]) -> bool:
        return find_header(self.headers, name) is not None

    @property
    def scheme(self) -> bytes:
        return self.url[0]

    @property
    def host(self) -> bytes:
        return self.url[1]

    @property
    def port(self) -> int:
        return self.url[2]

    @property
    def target(self) -> bytes:
        """Path plus query string."""
        return self.url[3]

    @property
    def url_string(self) -> str:
        return URLComponents(*self.url).to_string()


@dataclass(frozen=True)
class Response:
    """
    Status line and headers of a response, plus its body stream.

    The body is read lazily through ``stream``; for event streams it stays
    open for as long as the server keeps sending.
    """

    status_code: StatusCode
    headers: Headers = field(default_factory=list)
    stream: Optional[AsyncIterable[bytes]] = None
    extensions: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.status_code, int):
            raise ValueError("status_code must be int")

        _check_headers(self.headers)

        if not isinstance(self.extensions, dict):
            raise ValueError("extensions must be a dict")

    @classmethod
    def create(
        cls,
        status_code: StatusCode,
        headers: Optional[HeaderInput] = None,
        stream: Optional[AsyncIterable[bytes]] = None,
        extensions: Optional[Dict[str, Any]] = None,
    ) -> "Response":
        return cls(
            status_code=status_code,
            headers=normalize_headers(headers),
            stream=stream,
            extensions=extensions if extensions is not None else {},
        )

    def get_header(self, name: Union[str, bytes]) -> Optional[bytes]:
        return find_header(self.headers, name)

    def has_header(self, name: Union[str, bytes]) -> bool:
        return find_header(self.headers, name) is not None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299

    @property
    def is_redirect(self) -> bool:
        """True for redirect status codes that carry a Location header."""
        return self.status_code in (301, 302, 303, 307, 308) and self.has_header(b"location")
