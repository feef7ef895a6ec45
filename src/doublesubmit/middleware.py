"""
Starlette / FastAPI integration for the CSRF validator.

Usage::

    app.add_middleware(CSRFMiddleware, validator=CSRFValidator(secret))

Handlers read the current token through the ``get_csrf_token`` dependency to
hand it to the client (e.g. to embed it in a form as ``_csrf``).
"""

import dataclasses
import json
import logging
from collections.abc import Mapping
from typing import Any

from fastapi import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from src.doublesubmit.errors import CSRFError
from src.doublesubmit.validator import HEADER_NAME, CSRFRequest, CSRFValidator

logger = logging.getLogger(__name__)

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _parsed_body(request: Request) -> Mapping[str, Any] | None:
    """Parse the body into a mapping, or None for content we can't read.

    ``request.body()`` is awaited first so the bytes are cached and the
    downstream app can still read them. Undecodable JSON counts as a body
    without the token field.
    """
    raw = await request.body()
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in _FORM_TYPES:
        try:
            form = await request.form()
        except (MultiPartException, StarletteHTTPException, KeyError):
            # e.g. multipart without a boundary
            return None
        return {key: value for key, value in form.items()}
    if content_type == "application/json" or content_type.endswith("+json"):
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    if not raw:
        return {}
    return None


def error_response(exc: CSRFError, headers: Mapping[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.detail}},
        headers=dict(headers or {}),
    )


class CSRFMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, validator: CSRFValidator) -> None:
        super().__init__(app)
        self.validator = validator

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        csrf_request = CSRFRequest(
            method=request.method,
            url=str(request.url),
            headers=request.headers,
        )
        # Only checked requests without a header token need the body.
        if not self.validator.is_exempt(csrf_request) and not request.headers.get(HEADER_NAME):
            csrf_request = dataclasses.replace(csrf_request, body=await _parsed_body(request))

        headers: dict[str, str] = {}
        try:
            token = self.validator.validate(csrf_request, headers)
        except CSRFError as exc:
            return error_response(exc, headers)

        request.state.csrf_token = token
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.append(name, value)
        return response


def get_csrf_token(request: Request) -> str:
    """FastAPI dependency: the hex CSRF token for the current session."""
    token = getattr(request.state, "csrf_token", None)
    if token is None:
        raise RuntimeError("CSRFMiddleware is not installed on this app")
    return token
