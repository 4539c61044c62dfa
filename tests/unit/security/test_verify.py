import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi import HTTPException

from slotwise.auth import verify


class StaticJWKClient:
    """Hands back one EC public key, shaped like PyJWKClient's signing key."""

    def __init__(self, public_key):
        self.key = public_key

    def get_signing_key_from_jwt(self, token):
        return self


@pytest.fixture
def signing_key(monkeypatch):
    private_key = ec.generate_private_key(ec.SECP256R1())
    monkeypatch.setattr(verify, "_jwk_client", StaticJWKClient(private_key.public_key()))
    return private_key


def _token(private_key, **claims):
    now = int(time.time())
    payload = {"aud": "authenticated", "iat": now, "exp": now + 300, **claims}
    return jwt.encode(payload, private_key, algorithm="ES256")


def test_valid_token_returns_claims(signing_key):
    claims = verify.verify_jwt(_token(signing_key, sub="user-123"))

    assert claims["sub"] == "user-123"


def test_token_without_subject_is_rejected(signing_key):
    with pytest.raises(HTTPException) as exc_info:
        verify.verify_jwt(_token(signing_key))

    assert exc_info.value.status_code == 401
    assert "sub" in exc_info.value.detail


def test_expired_token_is_rejected(signing_key):
    with pytest.raises(HTTPException) as exc_info:
        verify.verify_jwt(_token(signing_key, sub="user-123", exp=int(time.time()) - 60))

    assert exc_info.value.status_code == 401
