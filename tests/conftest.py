"""
Shared pytest fixtures for the CSRF tests.

Provides:
- secret     – a 40-char HMAC secret
- csrf_app   – create_app() plus a few state-changing routes to protect
- client     – TestClient over plain HTTP (no Referer check)
- tls_client – TestClient over HTTPS (Referer must match the origin)

The test client's cookie jar drops the ``Domain=testserver`` cookie, so tests
read Set-Cookie themselves and send the Cookie header explicitly.
"""

import re

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from src.doublesubmit.config import CSRFConfig
from src.doublesubmit.main import create_app

SECRET = "test-secret-0123456789abcdef0123456789ab"


@pytest.fixture()
def secret():
    return SECRET


@pytest.fixture()
def csrf_app(secret):
    app = create_app(
        CSRFConfig(
            secret=secret,
            excluded_paths=("/webhooks/stripe", re.compile(r"^/public/")),
        )
    )

    @app.post("/api/items")
    def create_item():
        return {"ok": True}

    @app.put("/api/items/1")
    def update_item():
        return {"ok": True}

    @app.delete("/api/items/1")
    def delete_item():
        return {"ok": True}

    @app.post("/api/form")
    async def form_echo(request: Request):
        form = await request.form()
        return {"name": form.get("name")}

    @app.post("/webhooks/stripe")
    def stripe_webhook():
        return {"ok": True}

    @app.post("/public/contact")
    def contact():
        return {"ok": True}

    @app.get("/boom")
    def boom():
        raise RuntimeError("Simulated crash")

    return app


@pytest.fixture()
def client(csrf_app):
    with TestClient(csrf_app) as c:
        yield c


@pytest.fixture()
def tls_client(csrf_app):
    with TestClient(csrf_app, base_url="https://testserver") as c:
        yield c
