"""Order webhook ingestion: verify, decode, dispatch, mutate.

One call to OrderWebhookIngestor.handle() processes one Shopify delivery:

1. Verify the HMAC signature over the raw body (fail-closed)
2. Decode the body; undecodable bodies become an empty payload
3. Switch on the topic header and apply at most one store mutation
4. Return a tagged IngestResult; only the HTTP layer maps it to a status

Store failures propagate as StoreError so the delivery is answered with a
non-2xx status and Shopify retries it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from orderdash.store.base import RecordStore
from orderdash.webhooks.locking import OrderLocks
from orderdash.webhooks.payloads import (
    DELETE_REQUIRED_FIELDS,
    ORDER_REQUIRED_FIELDS,
    STATUS_PENDING,
    STATUS_UPDATED,
    as_text,
    decode_payload,
    missing_fields,
    order_fields,
)
from orderdash.webhooks.verification import SIGNATURE_HEADER, TOPIC_HEADER, ShopifyVerifier

logger = logging.getLogger(__name__)

TOPIC_ORDER_CREATED = "orders/create"
TOPIC_ORDER_EDITED = "orders/edited"
TOPIC_ORDER_DELETED = "orders/delete"


class Disposition(str, enum.Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    REJECTED = "rejected"


class Reason(str, enum.Enum):
    BAD_SIGNATURE = "bad_signature"
    UNKNOWN_TOPIC = "unknown_topic"
    INVALID_PAYLOAD = "invalid_payload"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"


class Action(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one webhook delivery."""

    disposition: Disposition
    topic: str = ""
    external_id: str = ""
    action: Action | None = None
    reason: Reason | None = None
    store_key: str | None = None

    @property
    def accepted(self) -> bool:
        return self.disposition is not Disposition.REJECTED

    @classmethod
    def applied(cls, topic: str, external_id: str, action: Action, store_key: str) -> IngestResult:
        return cls(Disposition.APPLIED, topic, external_id, action=action, store_key=store_key)

    @classmethod
    def skipped(cls, topic: str, reason: Reason, external_id: str = "") -> IngestResult:
        return cls(Disposition.SKIPPED, topic, external_id, reason=reason)

    @classmethod
    def rejected(cls, reason: Reason = Reason.BAD_SIGNATURE) -> IngestResult:
        return cls(Disposition.REJECTED, reason=reason)


class OrderWebhookIngestor:
    """Applies Shopify order webhooks to a RecordStore."""

    def __init__(
        self,
        verifier: ShopifyVerifier,
        store: RecordStore,
        locks: OrderLocks | None = None,
    ) -> None:
        self.verifier = verifier
        self.store = store
        self.locks = locks or OrderLocks()
        self._topics: dict[str, Callable[[str, dict[str, Any]], IngestResult]] = {
            TOPIC_ORDER_CREATED: self._order_created,
            TOPIC_ORDER_EDITED: self._order_edited,
            TOPIC_ORDER_DELETED: self._order_deleted,
        }

    def handle(self, body: bytes, headers: Mapping[str, str]) -> IngestResult:
        """Process one delivery. `headers` keys may be in any case."""
        lowered = {k.lower(): v for k, v in headers.items()}

        if not self.verifier.verify(body, lowered.get(SIGNATURE_HEADER)):
            return IngestResult.rejected()

        topic = lowered.get(TOPIC_HEADER) or ""
        payload = decode_payload(body)

        handler = self._topics.get(topic)
        if handler is None:
            logger.info("Unrecognized webhook topic %r; skipping", topic)
            return IngestResult.skipped(topic, Reason.UNKNOWN_TOPIC)
        return handler(topic, payload)

    # ── Topic handlers ───────────────────────────────────────────────────

    def _order_created(self, topic: str, payload: dict[str, Any]) -> IngestResult:
        missing = missing_fields(payload, ORDER_REQUIRED_FIELDS)
        if missing:
            logger.info("%s payload missing %s; skipping", topic, ",".join(missing))
            return IngestResult.skipped(topic, Reason.INVALID_PAYLOAD, as_text(payload.get("id")))

        fields = order_fields(payload, status=STATUS_PENDING)
        with self.locks.hold(fields.external_id):
            # Single existence check; a re-delivered create must not duplicate
            if self.store.find_by_external_id(fields.external_id) is not None:
                return IngestResult.skipped(topic, Reason.ALREADY_EXISTS, fields.external_id)
            store_key = self.store.save_order(fields)
        return IngestResult.applied(topic, fields.external_id, Action.CREATED, store_key)

    def _order_edited(self, topic: str, payload: dict[str, Any]) -> IngestResult:
        missing = missing_fields(payload, ORDER_REQUIRED_FIELDS)
        if missing:
            logger.info("%s payload missing %s; skipping", topic, ",".join(missing))
            return IngestResult.skipped(topic, Reason.INVALID_PAYLOAD, as_text(payload.get("id")))

        external_id = as_text(payload["id"])
        with self.locks.hold(external_id):
            existing = self.store.find_by_external_id(external_id)
            if existing is None:
                return IngestResult.skipped(topic, Reason.NOT_FOUND, external_id)
            # Keep the stored status; "updated" only when none is stored
            fields = order_fields(payload, status=existing.status or STATUS_UPDATED)
            self.store.edit_order(existing.store_key, fields)
        return IngestResult.applied(topic, external_id, Action.UPDATED, existing.store_key)

    def _order_deleted(self, topic: str, payload: dict[str, Any]) -> IngestResult:
        if missing_fields(payload, DELETE_REQUIRED_FIELDS):
            return IngestResult.skipped(topic, Reason.INVALID_PAYLOAD)

        external_id = as_text(payload["id"])
        with self.locks.hold(external_id):
            existing = self.store.find_by_external_id(external_id)
            if existing is None:
                return IngestResult.skipped(topic, Reason.NOT_FOUND, external_id)
            self.store.delete_order(existing.store_key)
        return IngestResult.applied(topic, external_id, Action.DELETED, existing.store_key)
