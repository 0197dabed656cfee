"""Per-order serialization for webhook dispatch.

Two deliveries for the same Shopify order can interleave between the
external-id lookup and the following write. When Redis is configured, each
dispatch holds a lock named orderdash:lock:order:{external_id} across that
lookup-then-write window.

Contract:
- Lock held by another delivery past `wait` seconds -> OrderLockTimeout
  (the handler answers 503 and Shopify re-delivers)
- Redis unreachable -> fail open (proceed unlocked, log a warning)
- Lock TTL bounds how long a crashed worker can block an order
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator

import redis as redis_lib
from redis.exceptions import LockError, RedisError

from orderdash.errors import OrderLockTimeout

logger = logging.getLogger(__name__)

_KEY_PREFIX = "orderdash:lock:order"


class OrderLocks:
    """No-op locks: every dispatch runs unserialized."""

    @contextlib.contextmanager
    def hold(self, external_id: str) -> Iterator[None]:
        yield


class RedisOrderLocks(OrderLocks):
    """Redis-backed per-order locks."""

    def __init__(
        self,
        client: redis_lib.Redis,
        *,
        ttl: float = 30.0,
        wait: float = 5.0,
    ) -> None:
        self._client = client
        self._ttl = ttl
        self._wait = wait

    @classmethod
    def from_url(cls, url: str, *, ttl: float = 30.0, wait: float = 5.0) -> RedisOrderLocks:
        return cls(redis_lib.from_url(url), ttl=ttl, wait=wait)

    @staticmethod
    def key_for(external_id: str) -> str:
        return f"{_KEY_PREFIX}:{external_id}"

    @contextlib.contextmanager
    def hold(self, external_id: str) -> Iterator[None]:
        lock = self._client.lock(
            self.key_for(external_id),
            timeout=self._ttl,
            blocking_timeout=self._wait,
        )
        try:
            acquired = lock.acquire()
        except RedisError:
            logger.warning(
                "Redis unavailable for order lock; proceeding unlocked for %s",
                external_id,
                exc_info=True,
            )
            yield
            return

        if not acquired:
            raise OrderLockTimeout(external_id)

        try:
            yield
        finally:
            try:
                lock.release()
            except (LockError, RedisError):
                # Expired under us or Redis went away; the TTL cleans up
                logger.warning("Failed to release order lock for %s", external_id)


def build_locks(redis_url: str, *, ttl: float = 30.0, wait: float = 5.0) -> OrderLocks:
    if not redis_url:
        return OrderLocks()
    return RedisOrderLocks.from_url(redis_url, ttl=ttl, wait=wait)
