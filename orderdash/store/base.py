"""Record store contract.

Every store exposes the four calls the webhook path needs (list, save, edit,
delete) plus a lookup by Shopify order id. Calls are blocking and raise
StoreError on failure; callers never get a partial result.
"""

from __future__ import annotations

import abc
import logging

from orderdash.models import Order, OrderFields

logger = logging.getLogger(__name__)


class RecordStore(abc.ABC):
    """Persistence backend for Order records."""

    name: str = "abstract"

    @abc.abstractmethod
    def list_orders(self) -> list[Order]:
        """Return every stored order."""

    @abc.abstractmethod
    def save_order(self, fields: OrderFields) -> str:
        """Insert a new order and return its store key."""

    @abc.abstractmethod
    def edit_order(self, store_key: str, fields: OrderFields) -> None:
        """Overwrite the fields of an existing order."""

    @abc.abstractmethod
    def delete_order(self, store_key: str) -> None:
        """Remove an order."""

    @abc.abstractmethod
    def delete_all_orders(self) -> int:
        """Remove every order. Returns how many were deleted."""

    def find_by_external_id(self, external_id: str) -> Order | None:
        """Resolve a Shopify order id to the stored record.

        Default strategy is a full scan of list_orders() (O(n), no lock held
        between this lookup and the following write). Stores with a secondary
        index override this with a point lookup.
        """
        for order in self.list_orders():
            if order.external_id == external_id:
                return order
        return None

    def close(self) -> None:
        """Release network resources. No-op by default."""
