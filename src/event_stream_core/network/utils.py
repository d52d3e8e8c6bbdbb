"""
URL and TLS helpers shared by the transport and the backends.
"""

import ssl
from typing import List, Optional, Tuple
from urllib.parse import urlparse


def create_ssl_context(
    alpn_protocols: Optional[List[str]] = None,
    verify_mode: int = ssl.CERT_REQUIRED,
    check_hostname: bool = True,
    cert_file: Optional[str] = None,
    key_file: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Build the trust settings used when no credential checker supplies
    its own context.

    Certificates are verified against the system store and TLS 1.2 is the
    floor. ``cert_file`` and ``key_file`` together enable client
    certificates.
    """
    context = ssl.create_default_context()
    context.check_hostname = check_hostname
    context.verify_mode = verify_mode

    context.set_alpn_protocols(alpn_protocols or ["http/1.1"])

    context.options |= ssl.OP_NO_COMPRESSION
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    if cert_file and key_file:
        context.load_cert_chain(cert_file, key_file)

    return context


def default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def parse_url(url: str) -> Tuple[str, str, int, str]:
    """
    Split ``url`` into ``(scheme, host, port, target)``.

    A missing scheme means http, a missing port means the scheme's default
    and the target always starts with ``/``. Raises ValueError when there
    is no host.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme or "http"

    host = parsed.hostname or ""
    if not host:
        raise ValueError("No hostname found in URL")

    port = parsed.port
    if port is None:
        port = default_port(scheme)

    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query

    return scheme, host, port, target


def format_host_header(host: str, port: int, scheme: str) -> str:
    """Host header value; the port is left out when it is the scheme default."""
    if ":" in host:
        host = f"[{host}]"
    if port == default_port(scheme):
        return host
    return f"{host}:{port}"
