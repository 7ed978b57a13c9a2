# backend/app/services/signature_verifier.py
"""
Webhook request authentication

Pure functions: no logging, no storage. Every malformed or missing input
is simply invalid.
"""

import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="
SHA256_HEX_LENGTH = 64


def compute_github_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_github_signature(body: bytes, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """Check X-Hub-Signature-256 against HMAC-SHA256 of the raw body"""
    if not secret or not signature_header:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    provided = signature_header[len(SIGNATURE_PREFIX):]
    if len(provided) != SHA256_HEX_LENGTH:
        return False
    try:
        provided_bytes = bytes.fromhex(provided)
    except ValueError:
        return False

    expected = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return hmac.compare_digest(expected, provided_bytes)


def hash_gitlab_token(pepper: str, token: str) -> str:
    """Stored form of a per-repository GitLab webhook token"""
    return hmac.new(pepper.encode(), token.encode(), hashlib.sha256).hexdigest()


def verify_gitlab_token(token_header: Optional[str], stored_hmac: Optional[str], pepper: Optional[str]) -> bool:
    """Compare the X-Gitlab-Token header with the repository's stored token HMAC"""
    if not token_header or not stored_hmac or not pepper:
        return False
    computed = hash_gitlab_token(pepper, token_header)
    return hmac.compare_digest(computed.encode(), stored_hmac.lower().encode())


def verify_signature(
    provider: str,
    body: bytes,
    header_value: Optional[str],
    secret: Optional[str],
    pepper: Optional[str] = None,
) -> bool:
    """
    Provider dispatch.

    For github `secret` is the webhook secret; for gitlab it is the stored
    token HMAC and `pepper` the server pepper.
    """
    if provider == "github":
        return verify_github_signature(body, header_value, secret)
    if provider == "gitlab":
        return verify_gitlab_token(header_value, secret, pepper)
    return False
