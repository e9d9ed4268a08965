"""PKCE (RFC 7636) verifier/challenge generation."""

import base64
import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass

# RFC 7636 section 4.1: ALPHA / DIGIT / "-" / "." / "_" / "~"
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


@dataclass(frozen=True)
class PkcePair:
    """PKCE codes for one login attempt. Never persisted.

    Attributes:
        verifier: Random secret sent to the token endpoint
        challenge: base64url(SHA-256(verifier)), sent in the authorize request
    """
    verifier: str
    challenge: str
    method: str = "S256"


def s256_challenge(verifier: str) -> str:
    """Compute the S256 code challenge for a verifier (unpadded base64url)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair(length: int = MAX_VERIFIER_LENGTH) -> PkcePair:
    """
    Generate a fresh verifier/challenge pair.

    Args:
        length: Verifier length, 43 to 128 characters

    Returns:
        PkcePair using the S256 method
    """
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"PKCE verifier length must be between {MIN_VERIFIER_LENGTH} and "
            f"{MAX_VERIFIER_LENGTH}, got {length}"
        )
    verifier = "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))
    return PkcePair(verifier=verifier, challenge=s256_challenge(verifier))


def generate_state() -> str:
    """Generate an unguessable state value for CSRF protection."""
    return secrets.token_urlsafe(32)


def state_matches(received: str, expected: str) -> bool:
    """Constant-time comparison of a callback state with the in-flight value.

    Works on UTF-8 bytes so arbitrary text from the redirect compares as a
    plain mismatch.
    """
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))
