import pytest

from slotwise.security import hashing


def _configure_secret(monkeypatch, secret: str = "a" * 32):
    monkeypatch.setattr("slotwise.security.hashing.settings.OAUTH_STATE_SECRET", secret)


def test_compute_hmac_is_deterministic(monkeypatch):
    _configure_secret(monkeypatch)
    first = hashing.compute_hmac("value", namespace="test")
    second = hashing.compute_hmac("value", namespace="test")
    assert first == second


def test_namespaces_change_output(monkeypatch):
    _configure_secret(monkeypatch)
    state = hashing.compute_hmac("abc", namespace="oauth_state")
    other = hashing.compute_hmac("abc", namespace="other")
    assert state != other


def test_verify_hmac_accepts_only_matching_signature(monkeypatch):
    _configure_secret(monkeypatch)
    signature = hashing.compute_hmac("payload", namespace="test")
    assert hashing.verify_hmac("payload", signature, namespace="test") is True
    assert hashing.verify_hmac("payload2", signature, namespace="test") is False
    assert hashing.verify_hmac("payload", "", namespace="test") is False


def test_missing_secret_raises(monkeypatch):
    _configure_secret(monkeypatch, "")
    with pytest.raises(hashing.HashingError):
        hashing.compute_hmac("value", namespace="test")


def test_too_short_secret_raises(monkeypatch):
    _configure_secret(monkeypatch, "short")
    with pytest.raises(hashing.HashingError):
        hashing.compute_hmac("value", namespace="test")
