"""Order payment constants.

Defines payment status / provider choices and the valid transitions of
the payment state machine shared by every gateway integration.
"""

from datetime import timedelta
from enum import Enum

from django.db import models


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class PaymentProvider(models.TextChoices):
    PAYME = "payme", "Payme"
    CLICK = "click", "Click"
    UZUM = "uzum", "Uzum Bank"


VALID_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        # Bound and completed in one write when no prepare/create came first.
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    # A reverse after the gateway reported failure closes the transaction.
    PaymentStatus.FAILED: {PaymentStatus.CANCELLED},
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}

TERMINAL_STATES: set[str] = {
    PaymentStatus.COMPLETED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
}

# Statuses from which a gateway may still take the money.
PAYABLE_STATES: set[str] = {PaymentStatus.PENDING, PaymentStatus.PROCESSING}

DEFAULT_CURRENCY = "UZS"

# Minor units (tiyin) per major unit (so'm).
MINOR_UNITS_PER_MAJOR = 100

UZUM_CREATE_TIMEOUT = timedelta(minutes=30)


class TransitionOutcome(str, Enum):
    """Result of a transition request against the state machine."""

    APPLIED = "applied"
    REPLAY = "replay"
