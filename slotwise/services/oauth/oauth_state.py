"""
Signed OAuth state codec.

State is ``base64url(json).signature`` where the JSON payload is
``{"v": 1, "uid": ..., "ts": <epoch ms>, "returnTo": ...}`` and the signature
is a namespaced HMAC-SHA256 over the encoded payload. Nothing is stored
server-side; the signature and timestamp carry the CSRF protection.
"""

import base64
import binascii
import json
import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from slotwise.infrastructure.observability.logging import get_logger, preview
from slotwise.security.hashing import compute_hmac, verify_hmac
from slotwise.services.errors import InvalidState

logger = get_logger(__name__)

STATE_VERSION = 1
STATE_TTL_SECONDS = 900  # 15 minutes
CLOCK_SKEW_SECONDS = 60
STATE_NAMESPACE = "oauth_state"
MAX_STATE_LENGTH = 4096


class OAuthStatePayload(BaseModel):
    """Versioned state payload; unknown keys and loose types are rejected."""

    model_config = ConfigDict(extra="forbid", strict=True, populate_by_name=True)

    v: Literal[1]
    uid: str = Field(..., min_length=1)
    ts: int
    return_to: str | None = Field(default=None, alias="returnTo")


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def encode_state(user_id: str, return_to: str | None = None, now_ms: int | None = None) -> str:
    """Build a signed state value for the authorization redirect."""
    payload = OAuthStatePayload(
        v=STATE_VERSION,
        uid=user_id,
        ts=now_ms if now_ms is not None else int(time.time() * 1000),
        return_to=return_to,
    )
    body = _b64url_encode(
        json.dumps(payload.model_dump(by_alias=True), separators=(",", ":")).encode("utf-8")
    )
    return f"{body}.{compute_hmac(body, namespace=STATE_NAMESPACE)}"


def decode_state(state: str | None, now_ms: int | None = None) -> OAuthStatePayload:
    """
    Verify and parse a state value from the callback.

    Raises:
        InvalidState: Missing, malformed, forged, wrong version or expired
    """
    if not state or len(state) > MAX_STATE_LENGTH or state.count(".") != 1:
        logger.warning("OAuth state rejected: malformed", state_preview=preview(state))
        raise InvalidState("Malformed OAuth state")

    body, signature = state.split(".")
    if not verify_hmac(body, signature, namespace=STATE_NAMESPACE):
        logger.warning("OAuth state rejected: bad signature", state_preview=preview(state))
        raise InvalidState("OAuth state signature mismatch")

    try:
        raw = json.loads(_b64url_decode(body))
        payload = OAuthStatePayload.model_validate(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError, ValidationError) as e:
        logger.warning("OAuth state rejected: bad payload", error=str(e)[:200])
        raise InvalidState("OAuth state payload is invalid") from e

    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    age_s = (now_ms - payload.ts) / 1000
    if age_s > STATE_TTL_SECONDS or age_s < -CLOCK_SKEW_SECONDS:
        logger.warning("OAuth state rejected: expired", user_id=payload.uid, age_seconds=age_s)
        raise InvalidState("OAuth state expired")

    return payload
