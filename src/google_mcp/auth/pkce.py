"""PKCE (RFC 7636) challenge generation for the authorization code flow."""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field

PKCE_METHOD = "S256"

VERIFIER_BYTES = 32
STATE_BYTES = 16


@dataclass(frozen=True)
class PKCEChallenge:
    """One authorization attempt's verifier, challenge and CSRF state.

    Never persisted. Discarded once the attempt settles.
    """

    code_verifier: str = field(repr=False)
    code_challenge: str
    state: str = field(repr=False)
    method: str = PKCE_METHOD

    def state_matches(self, candidate: str | None) -> bool:
        """Constant-time comparison of a callback ``state`` against ours."""
        if not candidate:
            return False
        return secrets.compare_digest(candidate.encode(), self.state.encode())


def code_challenge_for(verifier: str) -> str:
    """S256 transform: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> PKCEChallenge:
    """Generate a fresh verifier/challenge/state triple."""
    verifier = secrets.token_urlsafe(VERIFIER_BYTES)
    return PKCEChallenge(
        code_verifier=verifier,
        code_challenge=code_challenge_for(verifier),
        state=secrets.token_hex(STATE_BYTES),
    )
