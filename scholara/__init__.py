"""Scholara billing — Stripe webhook reconciliation for account entitlements."""

__version__ = "0.1.0"
