"""Gateway-level exceptions shared by the provider integrations."""

from __future__ import annotations


class GatewayAuthError(Exception):
    """The caller could not prove it is the configured gateway."""


class PaymentRequestError(Exception):
    """The callback payload is malformed (missing or unparsable fields)."""
