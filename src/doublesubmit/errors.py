"""
Error taxonomy for double-submit CSRF protection.

ConfigError and TokenValidationError are programming/codec errors and never
reach the client directly. Every CSRFError is an HTTPException carrying the
status code, a stable machine-readable ``code`` and a human ``title``, so a
FastAPI app can render it without extra handlers.
"""

from fastapi import HTTPException
from itsdangerous import BadSignature


class ConfigError(ValueError):
    """Raised at construction time when the CSRF configuration is unusable."""


class TokenValidationError(BadSignature):
    """A token failed the length or HMAC check in the codec."""


# ── Request-level failures ────────────────────────────────────────────────────


class CSRFError(HTTPException):
    status = 403
    title = "403 Forbidden"
    code = "csrf_error"
    default_message = "CSRF validation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(status_code=self.status, detail=message or self.default_message)


class ReferrerMissingError(CSRFError):
    code = "referrer_missing"
    default_message = "Referer header is missing"


class ReferrerMismatchError(CSRFError):
    code = "referrer_mismatch"
    default_message = "Invalid referer header"


class MissingTokenError(CSRFError):
    code = "token_missing"
    default_message = (
        "No CSRF token found. Add the _csrf field to your request body, "
        "or add the x-csrf-token header"
    )


class BodyNotParsedError(CSRFError):
    # Raised when nothing parsed the body before validation ran: an
    # integration bug on the server side, not a client error.
    status = 500
    title = "500 Internal Server Error"
    code = "body_not_parsed"
    default_message = "CSRF validation must run after the request body is parsed"


class InvalidTokenError(CSRFError):
    code = "token_invalid"
    default_message = "Invalid CSRF token"


class TokenMismatchError(CSRFError):
    code = "token_mismatch"
    default_message = "CSRF tokens do not match"
