"""
Token codec for the double-submit cookie.

A token is 64 bytes laid out as::

    authenticator (32 bytes) | nonce (32 bytes)

where ``authenticator = HMAC-SHA256(secret, nonce)``. Only the nonce travels
in the cookie; the server re-derives the authenticator on every request, so
issued tokens never have to be stored.
"""

import hashlib
import secrets

from itsdangerous.encoding import want_bytes
from itsdangerous.signer import HMACAlgorithm

from src.doublesubmit.errors import ConfigError, TokenValidationError

TOKEN_LENGTH = 32  # bytes, for both halves

_HMAC = HMACAlgorithm(hashlib.sha256)


def _key(secret: str | bytes) -> bytes:
    key = want_bytes(secret)
    if len(key) < TOKEN_LENGTH:
        raise ConfigError(f"CSRF secret must be at least {TOKEN_LENGTH} bytes")
    return key


def generate_token(secret: str | bytes) -> bytes:
    """Return a fresh token minted from a random nonce."""
    key = _key(secret)
    nonce = secrets.token_bytes(TOKEN_LENGTH)
    return _HMAC.get_signature(key, nonce) + nonce


def token_from_nonce(nonce: bytes, secret: str | bytes) -> bytes:
    """Rebuild the full token for a nonce recovered from a cookie.

    Produces exactly what generate_token returned for the same nonce/secret.
    """
    if len(nonce) != TOKEN_LENGTH:
        raise TokenValidationError("bad length")
    key = _key(secret)
    return _HMAC.get_signature(key, nonce) + nonce


def nonce_of(token: bytes) -> bytes:
    return token[TOKEN_LENGTH:]


def verify_token(token: bytes, secret: str | bytes) -> None:
    """
    Raise TokenValidationError unless *token* could have been minted with
    *secret*.

    This checks authenticity only; whether the token belongs to the current
    session is decided by the caller.
    """
    if len(token) != TOKEN_LENGTH * 2:
        raise TokenValidationError("bad length")
    authenticator, nonce = token[:TOKEN_LENGTH], token[TOKEN_LENGTH:]
    if not _HMAC.verify_signature(_key(secret), nonce, authenticator):
        raise TokenValidationError("mismatch")
