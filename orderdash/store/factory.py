"""Build the configured record store."""

from __future__ import annotations

import logging

from orderdash.config import Settings
from orderdash.errors import ConfigurationError
from orderdash.store.base import RecordStore
from orderdash.store.convex import ConvexOrderStore
from orderdash.store.memory import InMemoryOrderStore
from orderdash.store.postgres import PostgresOrderStore
from orderdash.store.retry import RetryPolicy

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> RecordStore:
    if settings.record_store == "memory":
        logger.warning("Using in-memory record store; orders are lost on restart")
        return InMemoryOrderStore()

    if settings.record_store == "convex":
        if not settings.convex_url:
            raise ConfigurationError("ORDERDASH_CONVEX_URL is required for the convex store")
        return ConvexOrderStore(
            settings.convex_url,
            settings.convex_deploy_key,
            timeout=settings.store_timeout,
            retry=RetryPolicy(max_retries=settings.store_max_retries),
        )

    if settings.record_store == "postgres":
        if not settings.database_url:
            raise ConfigurationError("ORDERDASH_DATABASE_URL is required for the postgres store")
        store = PostgresOrderStore(settings.database_url)
        store.init_schema()
        return store

    raise ConfigurationError(f"Unknown record store: {settings.record_store}")
