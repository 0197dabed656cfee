"""Inbound Shopify order webhooks.

Each delivery is signature-verified, decoded, and applied to the record store
under an optional per-order lock. Outcomes are tagged, never raised.
"""
