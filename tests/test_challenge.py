"""
Unit tests for authentication challenge delegation.
"""

import ssl

from event_stream_core.challenge import (
    AuthChallenge,
    ChallengeDisposition,
    ChallengeKind,
    ChallengeResponse,
    CredentialChecker,
    resolve_challenge,
)


CHALLENGE = AuthChallenge(
    kind=ChallengeKind.SERVER_TRUST,
    host="api.example.com",
    port=443,
    scheme="https",
)


class DecliningChecker:
    def __init__(self) -> None:
        self.seen = []

    def handle_challenge(self, challenge):
        self.seen.append(challenge)
        return None


class TestChallengeResponse:
    """Constructors for checker answers."""

    def test_use_ssl_context(self) -> None:
        context = ssl.create_default_context()
        response = ChallengeResponse.use_ssl_context(context)
        assert response.disposition is ChallengeDisposition.USE_CREDENTIAL
        assert response.ssl_context is context
        assert response.authorization is None

    def test_use_authorization(self) -> None:
        response = ChallengeResponse.use_authorization("Basic dXNlcjpwYXNz")
        assert response.disposition is ChallengeDisposition.USE_CREDENTIAL
        assert response.authorization == "Basic dXNlcjpwYXNz"

    def test_default_handling_and_cancel(self) -> None:
        assert ChallengeResponse.default_handling().disposition is ChallengeDisposition.PERFORM_DEFAULT_HANDLING
        assert ChallengeResponse.cancel().disposition is ChallengeDisposition.CANCEL


class TestResolveChallenge:
    """Checker answers and the default fallback."""

    def test_without_checker(self) -> None:
        assert resolve_challenge(None, CHALLENGE) == ChallengeResponse.default_handling()

    def test_declining_checker(self) -> None:
        checker = DecliningChecker()

        response = resolve_challenge(checker, CHALLENGE)

        assert response.disposition is ChallengeDisposition.PERFORM_DEFAULT_HANDLING
        assert checker.seen == [CHALLENGE]

    def test_checker_answer_is_used(self) -> None:
        class CancellingChecker:
            def handle_challenge(self, challenge):
                return ChallengeResponse.cancel()

        assert resolve_challenge(CancellingChecker(), CHALLENGE) == ChallengeResponse.cancel()

    def test_checker_protocol(self) -> None:
        assert isinstance(DecliningChecker(), CredentialChecker)
        assert not isinstance(object(), CredentialChecker)

    def test_challenge_defaults(self) -> None:
        assert CHALLENGE.www_authenticate is None
        assert CHALLENGE.previous_failure_count == 0
