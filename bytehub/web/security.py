"""Request signature and API key verification."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


def compute_github_signature(secret: str, body: bytes) -> str:
    """Compute the ``X-Hub-Signature-256`` header value for a body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_github_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check a GitHub webhook signature in constant time.

    Args:
        secret: Webhook secret shared with GitHub
        body: Raw request body
        signature: ``X-Hub-Signature-256`` header, ``sha256=<hex>``

    Returns:
        bool: True if the signature matches
    """
    if not secret or not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(compute_github_signature(secret, body), signature)


def verify_api_key_value(expected: str, provided: Optional[str]) -> bool:
    """Compare a presented API key against the configured one."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())
