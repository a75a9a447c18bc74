import pytest

from chatrooms.core.config import settings
from chatrooms.core.exceptions import AuthenticationError
from chatrooms.core.security import create_access_token, decode_token, extract_bearer


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "test-secret")


def test_token_carries_identity_claims():
    token = create_access_token("u1", "alice@example.com", role="admin")

    claims = decode_token(token)

    assert claims["id"] == "u1"
    assert claims["email"] == "alice@example.com"
    assert claims["role"] == "admin"


def test_expired_token_is_rejected():
    token = create_access_token("u1", "alice@example.com", expires_minutes=-1)

    with pytest.raises(AuthenticationError, match="expired"):
        decode_token(token)


def test_token_signed_with_other_secret_is_rejected(monkeypatch):
    token = create_access_token("u1", "alice@example.com")
    monkeypatch.setattr(settings, "JWT_SECRET", "another-secret")

    with pytest.raises(AuthenticationError, match="Invalid token"):
        decode_token(token)


def test_missing_secret_fails_closed(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "")

    with pytest.raises(AuthenticationError):
        decode_token("anything")


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer", "Bearer a b"])
def test_extract_bearer_rejects_bad_headers(header):
    with pytest.raises(AuthenticationError):
        extract_bearer(header)


def test_extract_bearer():
    assert extract_bearer("Bearer abc.def") == "abc.def"
