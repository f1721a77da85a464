# social_connect/oauth/pkce.py
"""
PKCE (RFC 7636) and state helpers. Pure functions, no I/O.
"""
import base64
import hashlib
import secrets
from typing import NamedTuple

VERIFIER_BYTES = 32
STATE_BYTES = 32


class PKCEPair(NamedTuple):
    code_verifier: str
    code_challenge: str


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    # 32 bytes -> 43 url-safe characters
    return _b64url(secrets.token_bytes(VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """S256 method: base64url(sha256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def verify_code_challenge(verifier: str, challenge: str) -> bool:
    expected = generate_code_challenge(verifier).encode("ascii")
    return secrets.compare_digest(expected, challenge.encode("utf-8"))


def generate_state() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


def create_pkce_pair() -> PKCEPair:
    verifier = generate_code_verifier()
    return PKCEPair(code_verifier=verifier, code_challenge=generate_code_challenge(verifier))
