"""Order payment domain exceptions.

Raised by the transition service and repositories when a payment rule
is violated.  Gateway services catch these and translate them into
their own wire vocabulary (Click error codes, Uzum statuses, Payme
JSON-RPC errors).
"""

from __future__ import annotations

from typing import Optional


class OrderNotFound(Exception):
    """The referenced order does not exist."""


class AmountMismatch(Exception):
    """The gateway-reported amount differs from the order amount."""

    def __init__(self, expected: int, received: Optional[int]) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Amount mismatch: expected {expected}, got {received}.")


class ProviderConflict(Exception):
    """The order is already bound to another provider or transaction."""


class AlreadyCompletedConflict(Exception):
    """A different transaction tried to complete an already paid order."""


class InvalidPaymentTransition(Exception):
    """The requested status change is not allowed by the state machine."""


class ConcurrentOrderUpdate(Exception):
    """The order changed between read and conditional write."""
