"""OrderWebhookIngestor: dispatch, mapping and tagged outcomes."""

from __future__ import annotations

import base64
import contextlib
import json
import os
from unittest.mock import MagicMock

import pytest

from conftest import WEBHOOK_SECRET, order_payload, shopify_signature
from orderdash.errors import StoreError
from orderdash.models import OrderFields
from orderdash.store.memory import InMemoryOrderStore
from orderdash.webhooks.ingestion import (
    Action,
    Disposition,
    OrderWebhookIngestor,
    Reason,
)
from orderdash.webhooks.locking import OrderLocks
from orderdash.webhooks.verification import ShopifyVerifier


def _headers(body: bytes, topic: str | None, signature: str | None = None) -> dict[str, str]:
    headers = {"X-Shopify-Hmac-Sha256": signature if signature is not None else shopify_signature(body)}
    if topic is not None:
        headers["X-Shopify-Topic"] = topic
    return headers


def _deliver(ingestor, payload, topic, signature=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return ingestor.handle(body, _headers(body, topic, signature))


class RecordingLocks(OrderLocks):
    def __init__(self) -> None:
        self.held: list[str] = []

    @contextlib.contextmanager
    def hold(self, external_id):
        self.held.append(external_id)
        yield


@pytest.fixture()
def store():
    return InMemoryOrderStore()


@pytest.fixture()
def ingestor(store):
    return OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), store)


def _seed(store, external_id="2002", status="Paid"):
    return store.save_order(
        OrderFields(external_id=external_id, email="old@b.com", total_price="5.00",
                    product="Old", date="2023-12-31T00:00:00Z", status=status)
    )


class TestOrderCreated:

    def test_creates_pending_record(self, ingestor, store):
        result = _deliver(ingestor, order_payload(), "orders/create")

        assert result.disposition is Disposition.APPLIED
        assert result.action is Action.CREATED
        [order] = store.list_orders()
        assert order.store_key == result.store_key
        assert order.external_id == "1001"
        assert order.email == "a@b.com"
        assert order.total_price == "19.99"
        assert order.product == "Shirt"
        assert order.date == "2024-01-01T00:00:00Z"
        assert order.status == "pending"

    def test_product_joins_line_item_titles(self, ingestor, store):
        _deliver(ingestor, order_payload(line_items=[{"title": "A"}, {"title": "B"}]), "orders/create")
        assert store.list_orders()[0].product == "A, B"

    def test_non_list_line_items_gives_empty_product(self, ingestor, store):
        _deliver(ingestor, order_payload(line_items="Shirt"), "orders/create")
        assert store.list_orders()[0].product == ""

    @pytest.mark.parametrize("field", ["id", "email", "total_price", "line_items", "created_at"])
    def test_missing_required_field_skips(self, ingestor, store, field):
        payload = order_payload()
        del payload[field]
        result = _deliver(ingestor, payload, "orders/create")

        assert result.disposition is Disposition.SKIPPED
        assert result.reason is Reason.INVALID_PAYLOAD
        assert store.list_orders() == []

    def test_redelivered_create_does_not_duplicate(self, ingestor, store):
        first = _deliver(ingestor, order_payload(), "orders/create")
        second = _deliver(ingestor, order_payload(), "orders/create")

        assert first.disposition is Disposition.APPLIED
        assert second.disposition is Disposition.SKIPPED
        assert second.reason is Reason.ALREADY_EXISTS
        assert len(store.list_orders()) == 1

    def test_numeric_shopify_id_is_stringified(self, ingestor, store):
        _deliver(ingestor, order_payload(id=820982911946154508), "orders/create")
        assert store.list_orders()[0].external_id == "820982911946154508"


class TestOrderEdited:

    def test_missing_order_is_noop(self, ingestor, store):
        _seed(store)
        before = store.list_orders()
        result = _deliver(ingestor, order_payload(id="9999"), "orders/edited")

        assert result.disposition is Disposition.SKIPPED
        assert result.reason is Reason.NOT_FOUND
        assert result.external_id == "9999"
        assert store.list_orders() == before

    def test_preserves_existing_status(self, ingestor, store):
        key = _seed(store, status="Paid")
        result = _deliver(
            ingestor,
            order_payload(id="2002", email="new@b.com", total_price="7.50",
                          line_items=[{"title": "New"}], created_at="2024-02-02T00:00:00Z"),
            "orders/edited",
        )

        assert result.action is Action.UPDATED
        [order] = store.list_orders()
        assert order.store_key == key
        assert order.status == "Paid"
        assert order.email == "new@b.com"
        assert order.total_price == "7.50"
        assert order.product == "New"
        assert order.date == "2024-02-02T00:00:00Z"

    def test_payload_status_does_not_override(self, ingestor, store):
        _seed(store, status="Paid")
        _deliver(ingestor, order_payload(id="2002", status="refunded"), "orders/edited")
        assert store.list_orders()[0].status == "Paid"

    def test_blank_status_falls_back_to_updated(self, ingestor, store):
        _seed(store, status="")
        _deliver(ingestor, order_payload(id="2002"), "orders/edited")
        assert store.list_orders()[0].status == "updated"

    def test_invalid_payload_skips_without_lookup(self, store):
        mock_store = MagicMock(wraps=store)
        ingestor = OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), mock_store)
        result = _deliver(ingestor, {"id": "2002", "email": "x@y.z"}, "orders/edited")

        assert result.reason is Reason.INVALID_PAYLOAD
        mock_store.find_by_external_id.assert_not_called()
        mock_store.list_orders.assert_not_called()


class TestOrderDeleted:

    def test_deletes_matching_order(self, ingestor, store):
        _seed(store, external_id="3003")
        _seed(store, external_id="3004")
        result = _deliver(ingestor, {"id": 3003}, "orders/delete")

        assert result.action is Action.DELETED
        assert [o.external_id for o in store.list_orders()] == ["3004"]

    def test_redelivered_delete_is_noop_both_times(self, ingestor, store):
        _seed(store, external_id="4004")
        first = _deliver(ingestor, {"id": "5005"}, "orders/delete")
        second = _deliver(ingestor, {"id": "5005"}, "orders/delete")

        assert first.reason is Reason.NOT_FOUND
        assert second.reason is Reason.NOT_FOUND
        assert len(store.list_orders()) == 1

    def test_missing_id_skips(self, ingestor, store):
        _seed(store)
        result = _deliver(ingestor, {"email": "a@b.com"}, "orders/delete")
        assert result.reason is Reason.INVALID_PAYLOAD
        assert len(store.list_orders()) == 1


class TestDispatch:

    def test_bad_signature_rejected_without_store_calls(self):
        mock_store = MagicMock()
        ingestor = OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), mock_store)
        sig = base64.b64encode(os.urandom(32)).decode()
        result = _deliver(ingestor, order_payload(), "orders/create", signature=sig)

        assert result.disposition is Disposition.REJECTED
        assert result.reason is Reason.BAD_SIGNATURE
        assert result.accepted is False
        assert mock_store.mock_calls == []

    def test_missing_signature_header_rejected(self, ingestor):
        body = json.dumps(order_payload()).encode()
        result = ingestor.handle(body, {"X-Shopify-Topic": "orders/create"})
        assert result.disposition is Disposition.REJECTED

    def test_unconfigured_secret_rejects_everything(self, store):
        ingestor = OrderWebhookIngestor(ShopifyVerifier(""), store)
        result = _deliver(ingestor, order_payload(), "orders/create", signature=shopify_signature(b"", ""))
        assert result.disposition is Disposition.REJECTED
        assert store.list_orders() == []

    def test_unknown_topic_is_noop(self, ingestor, store):
        result = _deliver(ingestor, order_payload(), "orders/unknown")
        assert result.disposition is Disposition.SKIPPED
        assert result.reason is Reason.UNKNOWN_TOPIC
        assert store.list_orders() == []

    def test_missing_topic_is_noop(self, ingestor, store):
        result = _deliver(ingestor, order_payload(), None)
        assert result.reason is Reason.UNKNOWN_TOPIC
        assert store.list_orders() == []

    @pytest.mark.parametrize("topic", ["orders/create", "orders/edited", "orders/delete"])
    def test_unparseable_signed_body_is_noop(self, ingestor, store, topic):
        _seed(store)
        result = _deliver(ingestor, b"{not json", topic)
        assert result.accepted is True
        assert result.reason is Reason.INVALID_PAYLOAD
        assert len(store.list_orders()) == 1

    def test_header_names_are_case_insensitive(self, ingestor, store):
        body = json.dumps(order_payload()).encode()
        result = ingestor.handle(
            body,
            {"x-shopify-hmac-sha256": shopify_signature(body), "X-SHOPIFY-TOPIC": "orders/create"},
        )
        assert result.action is Action.CREATED

    def test_store_failure_propagates(self):
        mock_store = MagicMock()
        mock_store.find_by_external_id.return_value = None
        mock_store.save_order.side_effect = StoreError("backend down")
        ingestor = OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), mock_store)

        with pytest.raises(StoreError):
            _deliver(ingestor, order_payload(), "orders/create")

    def test_at_most_one_mutation_per_delivery(self, store):
        mock_store = MagicMock(wraps=store)
        ingestor = OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), mock_store)
        _deliver(ingestor, order_payload(), "orders/create")
        _deliver(ingestor, order_payload(email="c@d.com"), "orders/edited")
        _deliver(ingestor, {"id": "1001"}, "orders/delete")

        assert mock_store.save_order.call_count == 1
        assert mock_store.edit_order.call_count == 1
        assert mock_store.delete_order.call_count == 1

    def test_lookup_and_write_run_under_order_lock(self, store):
        locks = RecordingLocks()
        ingestor = OrderWebhookIngestor(ShopifyVerifier(WEBHOOK_SECRET), store, locks)
        _deliver(ingestor, order_payload(id="7007"), "orders/create")
        _deliver(ingestor, order_payload(id="7007"), "orders/edited")
        _deliver(ingestor, {"id": "7007"}, "orders/delete")
        _deliver(ingestor, order_payload(), "orders/unknown")

        assert locks.held == ["7007", "7007", "7007"]
