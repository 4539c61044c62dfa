"""
HMAC-SHA256 signing helpers for values that round-trip through the browser
(OAuth state). Signatures are namespaced so one secret can serve several
purposes without cross-use.
"""

from __future__ import annotations

import hashlib
import hmac

from slotwise.config import settings

SECRET_MIN_LENGTH = 16  # keep configurable but catch obvious misconfiguration

__all__ = ["HashingError", "compute_hmac", "verify_hmac"]


class HashingError(RuntimeError):
    """Raised when signing prerequisites are not satisfied."""


def _secret_bytes() -> bytes:
    secret = settings.OAUTH_STATE_SECRET
    if not secret:
        raise HashingError("OAUTH_STATE_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise HashingError("OAUTH_STATE_SECRET is too short; please rotate it")
    return secret.encode("utf-8")


def compute_hmac(value: str, *, namespace: str) -> str:
    """
    Compute a namespaced hex HMAC-SHA256 digest.

    Args:
        value: Raw string value to sign.
        namespace: Logical namespace to avoid cross-purpose reuse.
    """
    scoped = f"{namespace}:{value or ''}"
    return hmac.new(_secret_bytes(), scoped.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_hmac(value: str, signature: str, *, namespace: str) -> bool:
    """Constant-time comparison of a presented signature."""
    expected = compute_hmac(value, namespace=namespace)
    return hmac.compare_digest(expected, signature or "")
