"""orderdash configuration."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Environment-driven settings for the order dashboard backend."""

    # Shared HMAC key configured in the Shopify admin. Empty means every
    # webhook is rejected.
    shopify_webhook_secret: str = Field(
        default="",
        validation_alias=AliasChoices(
            "shopify_webhook_secret",
            "ORDERDASH_SHOPIFY_WEBHOOK_SECRET",
            "SHOPIFY_WEBHOOK_SECRET",
        ),
    )

    record_store: Literal["memory", "convex", "postgres"] = "memory"
    convex_url: str = ""
    convex_deploy_key: str = ""
    database_url: str = ""
    store_timeout: float = 10.0
    store_max_retries: int = 3

    # Per-order serialization (empty = disabled)
    redis_url: str = ""
    order_lock_ttl: float = 30.0
    order_lock_wait: float = 5.0

    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = {
        "env_prefix": "ORDERDASH_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger. Idempotent."""
    root = logging.getLogger()
    if not any(getattr(h, "_orderdash", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._orderdash = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level.upper())
