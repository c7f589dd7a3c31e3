"""Stock deduction after a confirmed payment.

Invoked by the payment transition service exactly once per order that
reaches ``completed``.  Inventory problems must never block a payment
the customer has already made, so missing variants are logged and
skipped and quantities are floored at zero instead of raising.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog
from django.db import transaction

if TYPE_CHECKING:
    from modules.inventory.repositories.interfaces import IStockRepository
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class IStockDeductor(Protocol):
    def deduct_for_order(self, order: Order) -> None: ...


class StockService:
    """Application service for inventory side effects of payments."""

    def __init__(self, stock_repository: IStockRepository) -> None:
        self._stock_repo = stock_repository

    @transaction.atomic
    def deduct_for_order(self, order: Order) -> None:
        """Decrement stock for every item of a paid order.

        Items are processed sorted by variant key so concurrent
        deductions lock rows in the same order.
        """
        log = logger.bind(order_id=str(order.id))
        items = sorted(
            order.items.all(),
            key=lambda i: (str(i.product_id), i.color or "", i.size or ""),
        )
        if not items:
            log.info("stock.no_items")
            return

        for item in items:
            product_id = item.catalog_product_id
            if product_id is None:
                log.warning("stock.invalid_product_id", product_id=item.product_id)
                continue

            stock = self._stock_repo.get_variant_for_update(
                product_id, item.color, item.size
            )
            if stock is None:
                log.warning(
                    "stock.variant_not_found",
                    product_id=product_id,
                    color=item.color,
                    size=item.size,
                )
                continue

            old_quantity = stock.quantity
            stock.quantity = max(0, stock.quantity - item.quantity)
            stock.append_note(f"Deducted for order {order.id}: -{item.quantity}")
            stock.save(update_fields=["quantity", "notes"])

            log.info(
                "stock.deducted",
                product_id=product_id,
                color=stock.color,
                size=stock.size,
                old_quantity=old_quantity,
                new_quantity=stock.quantity,
            )
            if stock.is_low:
                log.warning(
                    "stock.below_minimum",
                    product_id=product_id,
                    quantity=stock.quantity,
                    min_stock_level=stock.min_stock_level,
                )
