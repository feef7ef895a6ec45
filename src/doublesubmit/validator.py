"""
Per-request CSRF verification for the double-submit cookie scheme.

Flow for every request:
  1. Recover the session token from the ``csrf-token`` cookie, minting a new
     one (and a Set-Cookie header) when the browser has none.
  2. Skip verification for unchecked methods and excluded paths.
  3. Over HTTPS, require a same-origin Referer.
  4. Take the candidate token from the ``x-csrf-token`` header or the ``_csrf``
     body field, check it was minted with our secret and that it equals the
     session token.

Failures in steps 3-4 (and a corrupt cookie in step 1) reset the cookie
before the error is raised, so the browser drops the stale token.

The validator is framework-free: it reads a CSRFRequest and writes into any
mutable mapping of response headers. See src.doublesubmit.middleware for the
Starlette/FastAPI adapter.
"""

import hmac
import logging
import re
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError
from starlette.requests import cookie_parser

from src.doublesubmit.config import CSRFConfig
from src.doublesubmit.errors import (
    BodyNotParsedError,
    ConfigError,
    CSRFError,
    InvalidTokenError,
    MissingTokenError,
    ReferrerMismatchError,
    ReferrerMissingError,
    TokenMismatchError,
    TokenValidationError,
)
from src.doublesubmit.token import (
    TOKEN_LENGTH,
    generate_token,
    nonce_of,
    token_from_nonce,
    verify_token,
)

logger = logging.getLogger(__name__)

COOKIE_NAME = "csrf-token"
HEADER_NAME = "x-csrf-token"
BODY_FIELD = "_csrf"
RESET_COOKIE = f"{COOKIE_NAME}=; Path=/; Max-Age=0"

_DEFAULT_PORTS = {"http": 80, "https": 443}


# ── Collaborator contract ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class CSRFRequest:
    """What the validator needs to know about an inbound request.

    ``body`` is the already-parsed request body, or None when nothing upstream
    parsed it.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Mapping[str, Any] | None = None

    @cached_property
    def _headers(self) -> dict[str, str]:
        return {k.lower(): v for k, v in self.headers.items()}

    def header(self, name: str) -> str | None:
        return self._headers.get(name.lower())

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def is_secure(self) -> bool:
        return urlsplit(self.url).scheme.lower() == "https"

    @property
    def host(self) -> str:
        """Request host without the port, for the cookie Domain attribute."""
        host_header = self.header("host")
        if host_header:
            try:
                return urlsplit(f"//{host_header}").hostname or ""
            except ValueError:  # e.g. unbalanced "[" in the header
                pass
        return urlsplit(self.url).hostname or ""

    @property
    def referrer(self) -> str | None:
        return self.header("referer") or self.header("referrer")

    @cached_property
    def cookies(self) -> dict[str, str]:
        return cookie_parser(self.header("cookie") or "")


def _origin(url: str) -> tuple[str, str, int | None]:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    return scheme, (parts.hostname or "").lower(), parts.port or _DEFAULT_PORTS.get(scheme)


def _same_origin(referrer: str, url: str) -> bool:
    try:
        ref_origin = _origin(referrer)
        req_origin = _origin(url)
    except ValueError:  # malformed port
        return False
    return bool(ref_origin[1]) and ref_origin == req_origin


def _decode_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise InvalidTokenError("CSRF token is not valid hex") from exc


# ── Validator ─────────────────────────────────────────────────────────────────


class CSRFValidator:
    def __init__(
        self,
        secret: str | bytes,
        *,
        checked_methods: Iterable[str] = ("POST", "PUT", "DELETE"),
        excluded_paths: Iterable[str | re.Pattern] = (),
        max_age: int = 2592000,
    ) -> None:
        try:
            config = CSRFConfig(
                secret=secret,
                checked_methods=frozenset(checked_methods),
                excluded_paths=tuple(excluded_paths),
                max_age=max_age,
            )
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
        if isinstance(config.secret, str):
            secret_len = len(config.secret.encode())
        else:
            secret_len = len(config.secret)
        if secret_len < TOKEN_LENGTH:
            raise ConfigError(f"CSRF secret must be at least {TOKEN_LENGTH} bytes")
        self.config = config

    @classmethod
    def from_config(cls, config: CSRFConfig) -> "CSRFValidator":
        return cls(
            config.secret,
            checked_methods=config.checked_methods,
            excluded_paths=config.excluded_paths,
            max_age=config.max_age,
        )

    def _issue_cookie(self, token: bytes, host: str) -> str:
        return (
            f"{COOKIE_NAME}={nonce_of(token).hex()}; HttpOnly; Secure; SameSite=Strict; "
            f"Max-Age={self.config.max_age}; Domain={host}; Path=/"
        )

    def _reject(
        self,
        exc: CSRFError,
        request: CSRFRequest,
        response_headers: MutableMapping[str, str],
    ) -> CSRFError:
        response_headers["set-cookie"] = RESET_COOKIE
        logger.warning(
            "csrf_rejected reason=%s method=%s path=%s",
            exc.code, request.method, request.path,
        )
        return exc

    def is_exempt(self, request: CSRFRequest) -> bool:
        if request.method.upper() not in self.config.checked_methods:
            return True
        path = request.path
        for entry in self.config.excluded_paths:
            if isinstance(entry, re.Pattern):
                if entry.search(path):
                    return True
            elif entry == path:
                return True
        return False

    def session_token(
        self,
        request: CSRFRequest,
        response_headers: MutableMapping[str, str],
    ) -> bytes:
        """Return the token for this browser session, issuing one if needed."""
        raw = request.cookies.get(COOKIE_NAME)
        if not raw:
            token = generate_token(self.config.secret)
            response_headers["set-cookie"] = self._issue_cookie(token, request.host)
            logger.info("csrf_token_issued host=%s", request.host)
            return token
        try:
            return token_from_nonce(_decode_hex(raw), self.config.secret)
        except (InvalidTokenError, TokenValidationError) as exc:
            logger.warning("csrf_cookie_invalid path=%s", request.path)
            raise self._reject(
                InvalidTokenError("CSRF cookie is malformed"), request, response_headers
            ) from exc

    def _candidate(self, request: CSRFRequest) -> str:
        header_token = request.header(HEADER_NAME)
        if header_token:
            return header_token
        if request.body is None:
            raise BodyNotParsedError()
        body_token = request.body.get(BODY_FIELD)
        if not body_token or not isinstance(body_token, str):
            raise MissingTokenError()
        return body_token

    def validate(
        self,
        request: CSRFRequest,
        response_headers: MutableMapping[str, str],
    ) -> str:
        """
        Run the CSRF check for *request*.

        Returns the session token (hex) on success. Raises a CSRFError
        subclass on failure after writing the cookie reset into
        *response_headers*.
        """
        session_token = self.session_token(request, response_headers)

        if self.is_exempt(request):
            return session_token.hex()

        try:
            if request.is_secure:
                referrer = request.referrer
                if not referrer:
                    raise ReferrerMissingError()
                if not _same_origin(referrer, request.url):
                    raise ReferrerMismatchError()

            candidate = _decode_hex(self._candidate(request))
            try:
                verify_token(candidate, self.config.secret)
            except TokenValidationError as exc:
                raise InvalidTokenError(f"Invalid CSRF token: {exc}") from exc
            if not hmac.compare_digest(candidate, session_token):
                raise TokenMismatchError()
        except CSRFError as exc:
            raise self._reject(exc, request, response_headers)

        return session_token.hex()
