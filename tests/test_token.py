"""
Token codec: layout, re-derivation from the cookie nonce, and tamper checks.
"""

import hashlib
import hmac

import pytest
from itsdangerous import BadSignature

from src.doublesubmit.errors import ConfigError, TokenValidationError
from src.doublesubmit.token import (
    TOKEN_LENGTH,
    generate_token,
    nonce_of,
    token_from_nonce,
    verify_token,
)

SECRET = "s" * 32
OTHER_SECRET = "t" * 32


def test_generate_token_is_64_bytes():
    token = generate_token(SECRET)
    assert len(token) == TOKEN_LENGTH * 2
    assert len(token.hex()) == 128


def test_generate_token_layout_is_hmac_then_nonce():
    token = generate_token(SECRET)
    nonce = token[TOKEN_LENGTH:]
    expected = hmac.new(SECRET.encode(), nonce, hashlib.sha256).digest()
    assert token[:TOKEN_LENGTH] == expected
    assert nonce_of(token) == nonce


def test_generate_token_uses_fresh_nonces():
    assert nonce_of(generate_token(SECRET)) != nonce_of(generate_token(SECRET))


def test_generate_token_rejects_short_secret():
    with pytest.raises(ConfigError):
        generate_token("short")


def test_generate_token_accepts_bytes_secret():
    token = generate_token(b"k" * 32)
    verify_token(token, b"k" * 32)


# ── token_from_nonce ──────────────────────────────────────────────────────────


def test_token_from_nonce_matches_generated_token():
    token = generate_token(SECRET)
    assert token_from_nonce(nonce_of(token), SECRET) == token


def test_token_from_nonce_is_deterministic():
    nonce = bytes(range(32))
    assert token_from_nonce(nonce, SECRET) == token_from_nonce(nonce, SECRET)


def test_token_from_nonce_differs_with_other_secret():
    token = generate_token(SECRET)
    assert token_from_nonce(nonce_of(token), OTHER_SECRET) != token


def test_token_from_nonce_rejects_wrong_nonce_length():
    with pytest.raises(TokenValidationError, match="bad length"):
        token_from_nonce(b"\x00" * 31, SECRET)


# ── verify_token ──────────────────────────────────────────────────────────────


def test_verify_token_accepts_generated_token():
    verify_token(generate_token(SECRET), SECRET)


def test_verify_token_rejects_other_secret():
    with pytest.raises(TokenValidationError, match="mismatch"):
        verify_token(generate_token(SECRET), OTHER_SECRET)


@pytest.mark.parametrize("length", [0, 32, 63, 65, 128])
def test_verify_token_rejects_wrong_length(length):
    with pytest.raises(TokenValidationError, match="bad length"):
        verify_token(b"\x01" * length, SECRET)


def test_verify_token_detects_any_flipped_bit():
    token = generate_token(SECRET)
    for i in range(len(token)):
        tampered = bytearray(token)
        tampered[i] ^= 0x01
        with pytest.raises(TokenValidationError):
            verify_token(bytes(tampered), SECRET)


def test_verify_token_detects_flipped_secret_bit():
    token = generate_token(SECRET)
    flipped = bytearray(SECRET.encode())
    flipped[0] ^= 0x01
    with pytest.raises(TokenValidationError):
        verify_token(token, bytes(flipped))


def test_token_validation_error_is_an_itsdangerous_bad_signature():
    with pytest.raises(BadSignature):
        verify_token(b"", SECRET)
