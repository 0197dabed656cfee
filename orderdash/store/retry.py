"""Exponential backoff with jitter for remote record store calls.

Retries transient HTTP errors (429, 500, 502, 503, 504) and connection
errors. Honors Retry-After. Anything else is raised on the first attempt.

Calls that are not idempotent (Convex mutations) are only retried when the
request never ran: a refused connection or a 429. A timeout or 5xx may arrive
after the write committed, so those are raised at once.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
UNSENT_STATUS_CODES = {429}

_TRANSIENT_ERRORS = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError)
_UNSENT_ERRORS = (httpx.ConnectError,)


@dataclass
class RetryPolicy:
    """How often and how patiently to retry a store call.

    Args:
        max_retries: Retry attempts after the first call (0 disables retries).
        base_delay: Delay before the first retry, doubled each attempt.
        max_delay: Cap for any single delay, including Retry-After.
        jitter: Fraction of the delay added or removed at random.
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.3
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(
        self, fn: Callable[..., T], *args: Any, idempotent: bool = True, **kwargs: Any
    ) -> T:
        statuses = RETRYABLE_STATUS_CODES if idempotent else UNSENT_STATUS_CODES
        errors = _TRANSIENT_ERRORS if idempotent else _UNSENT_ERRORS
        for attempt in range(self.max_retries + 1):
            try:
                return fn(*args, **kwargs)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status not in statuses or attempt == self.max_retries:
                    raise
                delay = self.delay_for(attempt, e.response)
                logger.warning(
                    "Retry %d/%d for %s (HTTP %d), waiting %.1fs",
                    attempt + 1,
                    self.max_retries,
                    getattr(fn, "__name__", "store call"),
                    status,
                    delay,
                )
            except _TRANSIENT_ERRORS as e:
                if not isinstance(e, errors) or attempt == self.max_retries:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retry %d/%d for %s (connection error: %s), waiting %.1fs",
                    attempt + 1,
                    self.max_retries,
                    getattr(fn, "__name__", "store call"),
                    type(e).__name__,
                    delay,
                )
            self.sleep(delay)
        raise AssertionError("unreachable")

    def delay_for(self, attempt: int, response: httpx.Response | None = None) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return min(float(retry_after), self.max_delay)
                except ValueError:
                    pass

        delay = min(self.base_delay * (2**attempt), self.max_delay)
        spread = delay * self.jitter
        delay += random.uniform(-spread, spread)
        return max(0.05, delay)
