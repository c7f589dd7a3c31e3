"""Order and OrderItem models.

Rules enforced here (the rest live in the transition service):
- ``amount`` is stored in minor units (tiyin) and never changes after
  creation; every gateway amount is converted before comparison.
- ``version`` is bumped by every conditional write, giving the repository
  a compare-and-set guard against concurrent gateway deliveries.
- A gateway transaction id can be bound to at most one order per provider
  (partial unique constraint).
- OrderItem snapshots name, price and fiscal codes at checkout time.
"""

from __future__ import annotations

from typing import Optional

from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    DEFAULT_CURRENCY,
    PAYABLE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    PaymentProvider,
    PaymentStatus,
)
from modules.orders.meta import META_BY_PROVIDER, ProviderMeta, parse_meta


class Order(BaseModel):
    """Order aggregate root as seen by the payment subsystem.

    Created by checkout in ``pending``; from then on only gateway webhooks
    move ``payment_status``.  ``payment_provider`` may be preselected at
    checkout, but the order counts as *bound* only once a gateway
    transaction id has been recorded.
    """

    amount: models.PositiveBigIntegerField = models.PositiveBigIntegerField(
        help_text="Order total in minor units (tiyin)."
    )
    currency: models.CharField = models.CharField(
        max_length=3, default=DEFAULT_CURRENCY
    )
    payment_provider: models.CharField = models.CharField(  # noqa: DJ01
        max_length=10,
        choices=PaymentProvider.choices,
        null=True,
        blank=True,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    provider_transaction_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64,
        null=True,
        blank=True,
        db_index=True,
    )
    meta: models.JSONField = models.JSONField(default=dict, blank=True)
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    customer_name: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )
    customer_phone: models.CharField = models.CharField(
        max_length=32, blank=True, default=""
    )
    customer_address: models.CharField = models.CharField(
        max_length=500, blank=True, default=""
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payment_status"], name="orders_pay_status_idx"),
            models.Index(
                fields=["payment_provider", "-created_at"],
                name="orders_provider_created_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["payment_provider", "provider_transaction_id"],
                condition=models.Q(provider_transaction_id__isnull=False),
                name="orders_unique_provider_transaction",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the payment reached a terminal state."""
        return self.payment_status in TERMINAL_STATES

    @property
    def is_payable(self) -> bool:
        return self.payment_status in PAYABLE_STATES

    @property
    def is_bound(self) -> bool:
        """An order is bound once a gateway transaction id is recorded."""
        return bool(self.provider_transaction_id)

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.payment_status, set())
        return new_status in allowed

    def is_bound_to(self, provider: str, transaction_id: str) -> bool:
        return (
            self.payment_provider == provider
            and self.provider_transaction_id == str(transaction_id)
        )

    # ------------------------------------------------------------------
    # Provider meta
    # ------------------------------------------------------------------

    @property
    def payment_meta(self) -> Optional[ProviderMeta]:
        """The stored meta parsed into its provider variant."""
        return parse_meta(self.meta)

    def meta_for(self, provider: str) -> ProviderMeta:
        """Current meta when it belongs to *provider*, else a fresh variant."""
        current = self.payment_meta
        if current is not None and current.provider == provider:
            return current
        return META_BY_PROVIDER[provider]()

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.id} ({self.payment_status})"


class OrderItem(BaseModel):
    """Line item snapshot taken at checkout.

    ``product_id`` is the storefront variant key (``102-nosize-nocolor``);
    the numeric catalog id is the part before the first ``-``.  ``price``
    is per unit, in minor units.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id: models.CharField = models.CharField(max_length=64)
    name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    price: models.PositiveBigIntegerField = models.PositiveBigIntegerField()
    color: models.CharField = models.CharField(max_length=64, blank=True, default="")
    size: models.CharField = models.CharField(  # noqa: DJ01
        max_length=32, null=True, blank=True
    )
    ikpu_code: models.CharField = models.CharField(
        max_length=32, blank=True, default=""
    )
    package_code: models.CharField = models.CharField(
        max_length=32, blank=True, default=""
    )
    vat_percent: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        null=True, blank=True
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    @property
    def subtotal(self) -> int:
        return self.quantity * self.price

    @property
    def catalog_product_id(self) -> Optional[int]:
        """Numeric catalog id, or ``None`` when the key is malformed."""
        head = str(self.product_id).split("-")[0]
        return int(head) if head.isdigit() else None

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity}"
