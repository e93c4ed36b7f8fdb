import time
from datetime import timedelta

import pytest
from jose import jwt

import config
from errors import AuthenticationError
from security import create_access_token, decode_access_token, get_password_hash, verify_password


def test_password_hash_roundtrip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)


def test_hashes_are_salted():
    assert get_password_hash("secret123") != get_password_hash("secret123")


def test_token_carries_identity():
    token = create_access_token("abc", "alice@example.com", "Alice")
    assert decode_access_token(token) == {"id": "abc", "email": "alice@example.com", "name": "Alice"}


def test_token_lifetime_is_seven_days():
    token = create_access_token("abc", "alice@example.com", "Alice")
    claims = jwt.get_unverified_claims(token)
    issued_for = claims["exp"] - int(time.time())
    assert timedelta(days=7) - timedelta(minutes=1) < timedelta(seconds=issued_for) <= timedelta(days=7)


def test_expired_token_rejected():
    token = create_access_token("abc", "alice@example.com", "Alice", expires_delta=timedelta(seconds=-10))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_foreign_signature_rejected():
    token = jwt.encode({"sub": "abc"}, config.JWT_SECRET + "x", algorithm=config.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_without_subject_rejected():
    token = jwt.encode({"email": "alice@example.com"}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)
