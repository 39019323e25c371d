from datetime import timedelta

import jwt
import pytest

from sessionguard.service.token_service import TokenService
from sessionguard.utils.errors import AuthError

SECRET = "unit-test-secret-with-enough-length-for-hs256"


@pytest.fixture
def tokens():
    return TokenService(secret_key=SECRET)


def test_issue_then_verify_returns_claims(tokens):
    token = tokens.issue(7, "a@x.com", timedelta(hours=48))
    assert tokens.verify(token) == {"id": 7, "email": "a@x.com"}


def test_expired_token_is_rejected(tokens):
    token = tokens.issue(7, "a@x.com", timedelta(seconds=-1))
    with pytest.raises(AuthError, match="expired"):
        tokens.verify(token)


def test_expiry_is_embedded_in_token(tokens):
    token = tokens.issue(7, "a@x.com", timedelta(hours=1))
    payload = jwt.decode(token, SECRET, algorithms=["HS256"])
    assert payload["exp"] - payload["iat"] == 3600


def test_rotated_secret_invalidates_tokens(tokens):
    token = tokens.issue(7, "a@x.com", timedelta(hours=1))
    rotated = TokenService(secret_key=SECRET + "-rotated")
    with pytest.raises(AuthError, match="Invalid token"):
        rotated.verify(token)


def test_tampered_token_is_rejected(tokens):
    token = tokens.issue(7, "a@x.com", timedelta(hours=1))
    header, payload, signature = token.split(".")
    forged = jwt.encode(
        {"id": 1, "email": "root@x.com"}, "attacker-secret-that-is-long-enough", algorithm="HS256"
    )
    with pytest.raises(AuthError):
        tokens.verify(".".join([header, forged.split(".")[1], signature]))


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_missing_or_garbage_token(tokens, token):
    with pytest.raises(AuthError):
        tokens.verify(token)


def test_tokens_for_same_user_are_distinct(tokens):
    first = tokens.issue(7, "a@x.com", timedelta(hours=1))
    second = tokens.issue(7, "a@x.com", timedelta(hours=1))
    assert first != second
