"""
Test encryption service functionality.
"""

import pytest

from slotwise.services.infrastructure.encryption_service import (
    EncryptionError,
    decrypt_oauth_tokens,
    decrypt_token,
    encrypt_oauth_tokens,
    encrypt_token,
    validate_encryption_config,
)


def test_basic_encryption_decryption():
    encrypted = encrypt_token("ya29.fake_access_token")

    assert isinstance(encrypted, bytes)
    assert b"ya29" not in encrypted
    assert decrypt_token(encrypted) == "ya29.fake_access_token"


def test_memoryview_from_bytea_is_accepted():
    encrypted = encrypt_token("token")

    assert decrypt_token(memoryview(encrypted)) == "token"


def test_encryption_config_validation():
    assert validate_encryption_config() is True


def test_oauth_token_pair_without_refresh_token():
    encrypted_access, encrypted_refresh = encrypt_oauth_tokens("access", None)

    assert encrypted_refresh is None
    assert decrypt_oauth_tokens(encrypted_access, encrypted_refresh) == ("access", None)


def test_empty_token_is_rejected():
    with pytest.raises(EncryptionError):
        encrypt_token("")


def test_corrupted_ciphertext_is_rejected():
    with pytest.raises(EncryptionError):
        decrypt_token(b"gAAAAA-not-a-real-token")


def test_missing_key_raises(monkeypatch):
    monkeypatch.setattr(
        "slotwise.services.infrastructure.encryption_service.settings.ENCRYPTION_KEY", None
    )
    with pytest.raises(EncryptionError):
        encrypt_token("token")
