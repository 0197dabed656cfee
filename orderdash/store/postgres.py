"""Postgres record store.

Unlike the scan-based default, lookups by Shopify order id go through a
unique index, and create is insert-if-absent so a retried orders/create
cannot produce a second row.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg.rows import dict_row

from orderdash.errors import StoreError
from orderdash.models import Order, OrderFields
from orderdash.store.base import RecordStore

logger = logging.getLogger(__name__)

_COLUMNS = "store_key, external_id, email, total_price, product, date, status, creation_time"


def _row_to_order(row: dict[str, Any]) -> Order:
    return Order(
        store_key=str(row["store_key"]),
        external_id=row["external_id"],
        email=row["email"],
        total_price=row["total_price"],
        product=row["product"] or "",
        date=row["date"] or "",
        status=row["status"] or "",
        creation_time=float(row["creation_time"] or 0.0),
    )


class PostgresOrderStore(RecordStore):
    """Record store backed by a single `orders` table."""

    name = "postgres"

    def __init__(self, database_url: str) -> None:
        self._url = database_url

    def _connect(self) -> psycopg.Connection:
        try:
            return psycopg.connect(self._url, autocommit=True, row_factory=dict_row)
        except psycopg.Error as e:
            raise StoreError("Cannot connect to Postgres") from e

    def _execute(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self._connect() as conn:
            try:
                cur = conn.execute(sql, params)
                return cur.fetchall() if cur.description else []
            except psycopg.Error as e:
                logger.exception("Postgres query failed")
                raise StoreError("Postgres query failed") from e

    def init_schema(self) -> None:
        """Create the orders table and its external_id index. Idempotent."""
        self._execute("""
            CREATE TABLE IF NOT EXISTS orders (
                store_key     BIGSERIAL PRIMARY KEY,
                external_id   TEXT NOT NULL,
                email         TEXT NOT NULL,
                total_price   TEXT NOT NULL,
                product       TEXT NOT NULL DEFAULT '',
                date          TEXT NOT NULL DEFAULT '',
                status        TEXT NOT NULL DEFAULT '',
                creation_time DOUBLE PRECISION NOT NULL
                              DEFAULT extract(epoch FROM now())
            )
        """)
        self._execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS orders_external_id_idx ON orders (external_id)"
        )
        logger.info("Postgres orders table initialized")

    def list_orders(self) -> list[Order]:
        rows = self._execute(f"SELECT {_COLUMNS} FROM orders ORDER BY store_key")
        return [_row_to_order(r) for r in rows]

    def find_by_external_id(self, external_id: str) -> Order | None:
        rows = self._execute(
            f"SELECT {_COLUMNS} FROM orders WHERE external_id = %s", (external_id,)
        )
        return _row_to_order(rows[0]) if rows else None

    def save_order(self, fields: OrderFields) -> str:
        rows = self._execute(
            """
            INSERT INTO orders (external_id, email, total_price, product, date, status)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (external_id) DO NOTHING
            RETURNING store_key
            """,
            (
                fields.external_id,
                fields.email,
                fields.total_price,
                fields.product,
                fields.date,
                fields.status,
            ),
        )
        if rows:
            return str(rows[0]["store_key"])

        # Row already present: hand back the existing key
        existing = self.find_by_external_id(fields.external_id)
        if existing is None:
            raise StoreError(f"Insert of order {fields.external_id} returned no key")
        logger.info("Order %s already stored; insert skipped", fields.external_id)
        return existing.store_key

    def edit_order(self, store_key: str, fields: OrderFields) -> None:
        rows = self._execute(
            """
            UPDATE orders
               SET external_id = %s, email = %s, total_price = %s,
                   product = %s, date = %s, status = %s
             WHERE store_key = %s
            RETURNING store_key
            """,
            (
                fields.external_id,
                fields.email,
                fields.total_price,
                fields.product,
                fields.date,
                fields.status,
                int(store_key),
            ),
        )
        if not rows:
            raise StoreError(f"No order with store key {store_key}")

    def delete_order(self, store_key: str) -> None:
        rows = self._execute(
            "DELETE FROM orders WHERE store_key = %s RETURNING store_key", (int(store_key),)
        )
        if not rows:
            raise StoreError(f"No order with store key {store_key}")

    def delete_all_orders(self) -> int:
        rows = self._execute("DELETE FROM orders RETURNING store_key")
        return len(rows)
