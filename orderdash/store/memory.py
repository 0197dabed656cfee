"""In-process record store for local development and tests."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable

from orderdash.errors import StoreError
from orderdash.models import Order, OrderFields
from orderdash.store.base import RecordStore

logger = logging.getLogger(__name__)


class InMemoryOrderStore(RecordStore):
    """Dict-backed store. Each call is atomic; nothing spans calls."""

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def list_orders(self) -> list[Order]:
        with self._lock:
            return list(self._orders.values())

    def save_order(self, fields: OrderFields) -> str:
        store_key = uuid.uuid4().hex
        with self._lock:
            self._orders[store_key] = Order.from_fields(store_key, fields, self._clock())
        logger.debug("Saved order %s as %s", fields.external_id, store_key)
        return store_key

    def edit_order(self, store_key: str, fields: OrderFields) -> None:
        with self._lock:
            existing = self._orders.get(store_key)
            if existing is None:
                raise StoreError(f"No order with store key {store_key}")
            self._orders[store_key] = existing.with_fields(fields)

    def delete_order(self, store_key: str) -> None:
        with self._lock:
            if self._orders.pop(store_key, None) is None:
                raise StoreError(f"No order with store key {store_key}")

    def delete_all_orders(self) -> int:
        with self._lock:
            count = len(self._orders)
            self._orders.clear()
        return count
