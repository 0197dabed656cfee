"""Exception hierarchy for orderdash."""

from __future__ import annotations


class OrderdashError(Exception):
    """Base class for all orderdash errors."""


class ConfigurationError(OrderdashError):
    """Settings cannot produce a working component (e.g. store URL missing)."""


class StoreError(OrderdashError):
    """A record store call failed. Never swallowed by the webhook path."""


class OrderLockTimeout(OrderdashError):
    """Another delivery for the same order held its lock past the wait time."""

    def __init__(self, external_id: str) -> None:
        super().__init__(f"Timed out waiting for order lock: {external_id}")
        self.external_id = external_id
