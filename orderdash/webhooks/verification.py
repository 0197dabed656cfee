"""Shopify webhook signature verification: constant-time HMAC.

Security contract:
- Shopify sends X-Shopify-Hmac-Sha256: base64(HMAC-SHA256(secret, raw body))
- The digest is computed over the exact raw bytes, before any JSON parsing
- Comparison uses hmac.compare_digest() (constant-time)
- Missing secret -> verification always fails (fail-closed)
- Missing header -> verification fails, no payload processing
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-shopify-hmac-sha256"
TOPIC_HEADER = "x-shopify-topic"


def compute_signature(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of body, as Shopify puts it in the signature header."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class ShopifyVerifier:
    """Verifies webhook bodies against one shared secret.

    The secret is injected at construction. An empty or missing secret is a
    valid object in an explicit unconfigured state: every verify() call fails.
    """

    def __init__(self, secret: str | None) -> None:
        self._secret = secret or ""
        if not self._secret:
            logger.warning("Shopify webhook secret not set; all webhooks will be rejected")

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def verify(self, body: bytes, signature_header: str | None) -> bool:
        """Return True only if signature_header is the digest of body."""
        if not self._secret:
            return False
        if not signature_header:
            return False

        expected = compute_signature(self._secret, body)
        # compare_digest on str requires ASCII; a non-ASCII header cannot match
        try:
            provided = signature_header.encode("ascii")
        except UnicodeEncodeError:
            return False
        return hmac.compare_digest(expected.encode("ascii"), provided)

    def sign(self, body: bytes) -> str:
        """Signature for body with this secret (used by the CLI)."""
        if not self._secret:
            raise ValueError("Shopify webhook secret is not configured")
        return compute_signature(self._secret, body)
