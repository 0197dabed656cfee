"""Shared fixtures for the orderdash test suite."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from orderdash.app import create_app
from orderdash.config import Settings
from orderdash.store.memory import InMemoryOrderStore
from orderdash.webhooks.locking import OrderLocks

WEBHOOK_SECRET = "shopify-test-secret"


def shopify_signature(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Compute a valid X-Shopify-Hmac-Sha256 value."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def order_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "id": "1001",
        "email": "a@b.com",
        "total_price": "19.99",
        "line_items": [{"title": "Shirt"}],
        "created_at": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def settings() -> Settings:
    return Settings(shopify_webhook_secret=WEBHOOK_SECRET, record_store="memory", redis_url="")


@pytest.fixture()
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture()
def app(settings, store):
    return create_app(settings, store=store, locks=OrderLocks())


@pytest.fixture()
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture()
def post_webhook(client) -> Callable[..., Any]:
    """POST a signed webhook. Pass body bytes or a payload dict."""

    def _post(payload: dict | bytes, topic: str | None = "orders/create", signature: str | None = None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Hmac-Sha256": signature if signature is not None else shopify_signature(body),
        }
        if topic is not None:
            headers["X-Shopify-Topic"] = topic
        return client.post("/api/shopify", content=body, headers=headers)

    return _post
