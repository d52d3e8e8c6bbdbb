"""
Authentication challenge delegation.

While a stream connects, the transport can meet two kinds of challenge:
the server's TLS identity has to be trusted, and the server may answer
``401`` asking for credentials. Both are offered to an optional
credential checker first. A checker that declines (returns None) leaves
the transport to its default handling: the platform TLS context, and no
credential for a 401.
"""

import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from typing_extensions import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class ChallengeKind(Enum):
    SERVER_TRUST = "server_trust"
    HTTP_AUTH = "http_auth"


class ChallengeDisposition(Enum):
    USE_CREDENTIAL = "use_credential"
    PERFORM_DEFAULT_HANDLING = "perform_default_handling"
    CANCEL = "cancel"


@dataclass(frozen=True)
class AuthChallenge:
    """
    A challenge raised while connecting.

    Attributes:
        kind: Server trust (TLS) or HTTP authentication
        host: Host being connected to
        port: Port being connected to
        scheme: URL scheme of the request
        www_authenticate: The WWW-Authenticate header of a 401 response
        previous_failure_count: How many credentials were already rejected
    """
    kind: ChallengeKind
    host: str
    port: int
    scheme: str
    www_authenticate: Optional[str] = None
    previous_failure_count: int = 0


@dataclass(frozen=True)
class ChallengeResponse:
    """
    A checker's answer to a challenge.

    ``ssl_context`` answers a server-trust challenge, ``authorization``
    (the full Authorization header value) answers an HTTP challenge.
    """
    disposition: ChallengeDisposition
    ssl_context: Optional[ssl.SSLContext] = None
    authorization: Optional[str] = None

    @classmethod
    def use_ssl_context(cls, context: ssl.SSLContext) -> "ChallengeResponse":
        return cls(ChallengeDisposition.USE_CREDENTIAL, ssl_context=context)

    @classmethod
    def use_authorization(cls, value: str) -> "ChallengeResponse":
        return cls(ChallengeDisposition.USE_CREDENTIAL, authorization=value)

    @classmethod
    def default_handling(cls) -> "ChallengeResponse":
        return cls(ChallengeDisposition.PERFORM_DEFAULT_HANDLING)

    @classmethod
    def cancel(cls) -> "ChallengeResponse":
        return cls(ChallengeDisposition.CANCEL)


@runtime_checkable
class CredentialChecker(Protocol):
    """Collaborator consulted for authentication challenges."""

    def handle_challenge(self, challenge: AuthChallenge) -> Optional[ChallengeResponse]:
        """Answer the challenge, or return None to decline it."""
        ...


def resolve_challenge(
    checker: Optional[CredentialChecker],
    challenge: AuthChallenge,
) -> ChallengeResponse:
    """Ask the checker, falling back to default handling when it declines."""
    if checker is not None:
        response = checker.handle_challenge(challenge)
        if response is not None:
            logger.debug(
                f"{challenge.kind.value} challenge for {challenge.host}:{challenge.port} "
                f"answered with {response.disposition.value}"
            )
            return response
    return ChallengeResponse.default_handling()
