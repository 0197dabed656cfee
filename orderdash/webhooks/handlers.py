"""Webhook HTTP handler: FastAPI route for inbound Shopify order webhooks.

The handler:
1. Reads the raw body (needed for HMAC verification)
2. Runs the ingestor in the threadpool (store calls block)
3. Collapses the IngestResult to the wire-level response

Security contract:
- Return 401 only for signature failures
- Return 200 for every authenticated delivery, applied or skipped
  (don't leak which topics or payloads are acted on)
- Store failures -> 500, lock contention -> 503, so Shopify re-delivers
- Never return error details to the webhook caller
- Log every delivery for the audit trail
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from orderdash.errors import OrderLockTimeout, StoreError
from orderdash.webhooks.ingestion import IngestResult, OrderWebhookIngestor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


class WebhookAudit:
    """Counts webhook outcomes since process start and writes the audit log."""

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()
        self._lock = threading.Lock()

    def record(self, outcome: str, topic: str = "", external_id: str = "", reason: str = "") -> None:
        with self._lock:
            self._counts[outcome] += 1
            count = self._counts[outcome]
        logger.info(
            "WEBHOOK_AUDIT topic=%s id=%s outcome=%s reason=%s count=%d",
            topic or "-",
            external_id or "-",
            outcome,
            reason or "-",
            count,
        )

    def record_result(self, result: IngestResult) -> None:
        outcome = result.disposition.value
        if result.action is not None:
            outcome = f"{outcome}:{result.action.value}"
        self.record(
            outcome,
            topic=result.topic,
            external_id=result.external_id,
            reason=result.reason.value if result.reason else "",
        )

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


@router.post("/api/shopify")
async def shopify_webhook(request: Request) -> JSONResponse:
    """Receive Shopify order webhooks (signature-verified)."""
    ingestor: OrderWebhookIngestor = request.app.state.ingestor
    audit: WebhookAudit = request.app.state.webhook_audit
    start = time.time()

    body = await request.body()
    headers = dict(request.headers)

    try:
        result = await run_in_threadpool(ingestor.handle, body, headers)
    except OrderLockTimeout as e:
        audit.record("failed", topic=headers.get("x-shopify-topic", ""),
                     external_id=e.external_id, reason="lock_timeout")
        return JSONResponse({"error": "Busy"}, status_code=503)
    except StoreError:
        logger.exception("Record store call failed while handling webhook")
        audit.record("failed", topic=headers.get("x-shopify-topic", ""), reason="store_error")
        return JSONResponse({"error": "Internal error"}, status_code=500)

    audit.record_result(result)
    if not result.accepted:
        logger.warning(
            "Rejected Shopify webhook from %s: %s",
            request.client.host if request.client else "unknown",
            result.reason.value if result.reason else "unknown",
        )
        return JSONResponse({"error": "Invalid signature"}, status_code=401)

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, result.topic)
    return JSONResponse({"ok": True}, status_code=200)


@router.get("/api/webhooks/status")
async def webhook_status(request: Request) -> dict:
    """Webhook outcome counts since process start."""
    audit: WebhookAudit = request.app.state.webhook_audit
    return {"counts": audit.snapshot()}
