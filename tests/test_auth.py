"""
Tests for bearer token authentication module
"""

import pytest
from unittest.mock import patch

from connectu.core.auth import SECRET_KEY, SERVICE_NAME, TokenManager, resolve_secret
from connectu.core.errors import Unauthorized


@pytest.fixture
def mock_keyring():
    """Mock keyring for testing without accessing system keyring"""
    storage = {}

    def mock_get(service, key):
        return storage.get(f"{service}:{key}")

    def mock_set(service, key, value):
        storage[f"{service}:{key}"] = value

    with (
        patch("keyring.get_password", side_effect=mock_get),
        patch("keyring.set_password", side_effect=mock_set),
    ):
        yield storage


def test_configured_secret_wins(mock_keyring):
    """Test that a configured secret is used without touching the keyring"""
    assert resolve_secret("from-config") == "from-config"
    assert mock_keyring == {}


def test_secret_generated_once(mock_keyring):
    """Test that the generated secret is stored and reused"""
    first = resolve_secret(None)
    second = resolve_secret(None)

    assert first == second
    assert len(first) == 64
    assert mock_keyring[f"{SERVICE_NAME}:{SECRET_KEY}"] == first


def test_issue_and_verify():
    """Test that an issued token maps back to its user"""
    tokens = TokenManager("secret")
    token = tokens.issue("user-1")

    assert tokens.verify(token) == "user-1"


def test_verify_missing_token():
    with pytest.raises(Unauthorized) as exc:
        TokenManager("secret").verify("")
    assert "no token" in exc.value.message


def test_verify_wrong_secret():
    token = TokenManager("secret").issue("user-1")

    with pytest.raises(Unauthorized):
        TokenManager("other-secret").verify(token)


def test_verify_expired_token():
    token = TokenManager("secret", expire_days=-1).issue("user-1")

    with pytest.raises(Unauthorized):
        TokenManager("secret").verify(token)


def test_verify_garbage():
    with pytest.raises(Unauthorized):
        TokenManager("secret").verify("not-a-jwt")
