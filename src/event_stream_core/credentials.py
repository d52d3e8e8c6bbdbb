"""
API credentials.

Builds the authentication headers every request to the API carries.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .http_primitives import Request


@dataclass(frozen=True)
class APICredentials:
    """
    Bearer token and optional organization for the API.

    Attributes:
        api_token: Secret token sent as ``Authorization: Bearer <token>``
        organization: Optional organization sent as ``OpenAI-Organization``
    """
    api_token: str
    organization: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.api_token:
            raise ValueError("api_token must not be empty")

    def headers(self, content_type: str = "application/json") -> Dict[str, str]:
        """Base headers for JSON requests."""
        headers = {"Authorization": f"Bearer {self.api_token}"}
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        headers["content-type"] = content_type
        return headers

    def multipart_headers(self) -> Dict[str, str]:
        """Base headers for multipart form uploads."""
        return self.headers(content_type="multipart/form-data")

    def apply(self, request: Request) -> Request:
        """Return the request with the base headers set, replacing existing ones."""
        for name, value in self.headers().items():
            request = request.set_header(name, value)
        return request

    def __repr__(self) -> str:
        return f"APICredentials(api_token='***', organization={self.organization!r})"
