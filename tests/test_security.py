"""Password hashing and access tokens."""

from datetime import timedelta

from jose import jwt

from gallery_api.utils.security import (
    PASSWORD_ALPHABET,
    create_access_token,
    decode_access_token,
    generate_password,
    hash_password,
    verify_password,
)


def test_hash_and_verify():
    hashed = hash_password("s3cret-value")

    assert hashed != "s3cret-value"
    assert hashed.startswith("$2")
    assert verify_password("s3cret-value", hashed)
    assert not verify_password("other", hashed)


def test_verify_against_missing_or_malformed_hash():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-hash")


def test_generated_passwords():
    passwords = {generate_password() for _ in range(20)}

    assert len(passwords) == 20
    assert all(len(p) == 16 and set(p) <= set(PASSWORD_ALPHABET) for p in passwords)


def test_token_round_trip():
    payload = decode_access_token(create_access_token("user-1"))

    assert payload.sub == "user-1"


def test_expired_and_forged_tokens():
    expired = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
    forged = jwt.encode({"sub": "user-1", "iss": "gallery-api", "exp": 4102444800}, "wrong-secret", algorithm="HS256")

    assert decode_access_token(expired) is None
    assert decode_access_token(forged) is None
