"""Convex record store over the Convex HTTP API.

Calls the deployment's `orders` functions:

    POST {url}/api/query     {"path": "orders:listOrders", "args": {}, "format": "json"}
    POST {url}/api/mutation  {"path": "orders:saveOrder",  "args": {...}, "format": "json"}

Convex documents carry their own `_id` (our store key) and `_creationTime`
(milliseconds); the Shopify order id lives in the `id` field.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from orderdash.errors import StoreError
from orderdash.models import Order, OrderFields
from orderdash.store.base import RecordStore
from orderdash.store.retry import RetryPolicy

logger = logging.getLogger(__name__)

_MODULE = "orders"


def _document_to_order(doc: dict[str, Any]) -> Order:
    return Order(
        store_key=str(doc["_id"]),
        external_id=str(doc.get("id", "")),
        email=str(doc.get("email", "")),
        total_price=str(doc.get("total_price", "")),
        product=str(doc.get("product") or ""),
        date=str(doc.get("date") or ""),
        status=str(doc.get("status") or ""),
        creation_time=float(doc.get("_creationTime", 0)) / 1000.0,
    )


def _fields_to_args(fields: OrderFields) -> dict[str, str]:
    return {
        "id": fields.external_id,
        "email": fields.email,
        "total_price": fields.total_price,
        "product": fields.product,
        "date": fields.date,
        "status": fields.status,
    }


class ConvexOrderStore(RecordStore):
    """Record store backed by a Convex deployment."""

    name = "convex"

    def __init__(
        self,
        url: str,
        deploy_key: str = "",
        *,
        timeout: float = 10.0,
        retry: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if deploy_key:
            headers["Authorization"] = f"Convex {deploy_key}"
        self._client = httpx.Client(
            base_url=url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._retry = retry or RetryPolicy()

    # ── Transport ────────────────────────────────────────────────────────

    def _post(self, kind: str, function: str, args: dict[str, Any]) -> Any:
        response = self._client.post(
            f"/api/{kind}",
            json={"path": f"{_MODULE}:{function}", "args": args, "format": "json"},
        )
        response.raise_for_status()
        return response.json()

    def _call(self, kind: str, function: str, args: dict[str, Any] | None = None) -> Any:
        try:
            body = self._retry.call(
                self._post, kind, function, args or {}, idempotent=kind == "query"
            )
        except httpx.HTTPError as e:
            logger.error("Convex %s %s failed: %s", kind, function, type(e).__name__)
            raise StoreError(f"Convex {kind} {function} failed") from e
        except ValueError as e:
            raise StoreError(f"Convex {kind} {function} returned invalid JSON") from e

        if not isinstance(body, dict) or body.get("status") != "success":
            message = body.get("errorMessage") if isinstance(body, dict) else None
            logger.error("Convex %s %s returned error: %s", kind, function, message)
            raise StoreError(f"Convex {kind} {function} error: {message or 'unknown'}")
        return body.get("value")

    # ── RecordStore ──────────────────────────────────────────────────────

    def list_orders(self) -> list[Order]:
        value = self._call("query", "listOrders")
        if not isinstance(value, list):
            raise StoreError("Convex listOrders did not return a list")
        return [_document_to_order(doc) for doc in value]

    def save_order(self, fields: OrderFields) -> str:
        value = self._call("mutation", "saveOrder", _fields_to_args(fields))
        if not value:
            raise StoreError("Convex saveOrder returned no document id")
        return str(value)

    def edit_order(self, store_key: str, fields: OrderFields) -> None:
        self._call("mutation", "editOrder", {"_id": store_key, **_fields_to_args(fields)})

    def delete_order(self, store_key: str) -> None:
        self._call("mutation", "deleteOrder", {"_id": store_key})

    def delete_all_orders(self) -> int:
        value = self._call("mutation", "deleteAllOrders")
        if isinstance(value, dict):
            return int(value.get("deleted", 0))
        return 0

    def close(self) -> None:
        self._client.close()
