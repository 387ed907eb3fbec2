# src/tiktok_bff/pkce.py

"""One-time secrets for an authorization attempt: CSRF state and the PKCE pair."""

import base64
import hashlib
import secrets

# RFC 7636: verifier is 43-128 chars of [A-Za-z0-9-._~]
CODE_VERIFIER_BYTES = 64
CSRF_TOKEN_BYTES = 32
CODE_CHALLENGE_METHOD = "S256"


def new_csrf_token() -> str:
    return secrets.token_urlsafe(CSRF_TOKEN_BYTES)


def new_code_verifier() -> str:
    # 64 bytes encode to 86 characters, inside the 43..128 window
    return secrets.token_urlsafe(CODE_VERIFIER_BYTES)


def code_challenge(verifier: str) -> str:
    """URL-safe base64 of SHA-256(verifier), padding stripped (S256 method)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def states_match(received: str, expected: str) -> bool:
    if not received or not expected:
        return False
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))
