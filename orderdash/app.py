"""FastAPI application factory.

    uvicorn --factory orderdash.app:create_app

Components are built from Settings unless passed in, so tests can inject a
fixed secret, an in-memory store and their own locks.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orderdash.config import Settings
from orderdash.dashboard.routes import router as dashboard_router
from orderdash.store.base import RecordStore
from orderdash.store.factory import build_store
from orderdash.webhooks.handlers import WebhookAudit
from orderdash.webhooks.handlers import router as webhook_router
from orderdash.webhooks.ingestion import OrderWebhookIngestor
from orderdash.webhooks.locking import OrderLocks, build_locks
from orderdash.webhooks.verification import ShopifyVerifier

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    locks: OrderLocks | None = None,
) -> FastAPI:
    settings = settings or Settings()
    store = store or build_store(settings)
    if locks is None:
        locks = build_locks(
            settings.redis_url,
            ttl=settings.order_lock_ttl,
            wait=settings.order_lock_wait,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "orderdash starting: store=%s webhook_secret=%s locking=%s",
            store.name,
            "set" if app.state.ingestor.verifier.configured else "MISSING",
            type(locks).__name__,
        )
        yield
        store.close()

    app = FastAPI(title="orderdash", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.ingestor = OrderWebhookIngestor(
        ShopifyVerifier(settings.shopify_webhook_secret), store, locks
    )
    app.state.webhook_audit = WebhookAudit()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(webhook_router)
    app.include_router(dashboard_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "store": store.name}

    return app
