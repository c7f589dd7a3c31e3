"""Stock model.

One row per sellable variant: catalog product id plus optional colour
and size.  A missing colour or size is stored as an empty string so the
variant key stays unique.  ``notes`` is an append-only audit trail of
automatic deductions; ``quantity`` never goes below zero.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel

DEFAULT_MIN_STOCK_LEVEL = 10


class Stock(BaseModel):
    product_id: models.PositiveIntegerField = models.PositiveIntegerField()
    product_name: models.CharField = models.CharField(max_length=255)
    color: models.CharField = models.CharField(max_length=64, blank=True, default="")
    size: models.CharField = models.CharField(max_length=32, blank=True, default="")
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    min_stock_level: models.PositiveIntegerField = models.PositiveIntegerField(
        default=DEFAULT_MIN_STOCK_LEVEL
    )
    is_available: models.BooleanField = models.BooleanField(default=True)
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "stock"
        ordering = ["product_id", "color", "size"]
        constraints = [
            models.UniqueConstraint(
                fields=["product_id", "color", "size"],
                name="stock_unique_variant",
            ),
        ]

    @property
    def is_low(self) -> bool:
        return self.quantity <= self.min_stock_level

    def append_note(self, note: str) -> None:
        self.notes = f"{self.notes}; {note}" if self.notes else note

    def __str__(self) -> str:
        variant = "/".join(part for part in (self.color, self.size) if part)
        return f"{self.product_name} [{variant or 'default'}]: {self.quantity}"
