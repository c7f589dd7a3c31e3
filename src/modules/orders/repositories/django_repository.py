"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Status changes never use load-then-save: ``compare_and_set`` issues a
single ``UPDATE ... WHERE id=? AND version=? AND payment_status=?`` so two
concurrent deliveries of the same webhook cannot both win.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from modules.orders.exceptions import ConcurrentOrderUpdate, ProviderConflict
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        items = data.get("items", [])
        order = Order(
            amount=data["amount"],
            currency=data.get("currency", "UZS"),
            payment_provider=data.get("payment_provider"),
            customer_name=data.get("customer_name", ""),
            customer_phone=data.get("customer_phone", ""),
            customer_address=data.get("customer_address", ""),
        )
        order.save()

        for item_data in items:
            OrderItem.objects.create(
                order=order,
                product_id=str(item_data["product_id"]),
                name=item_data["name"],
                quantity=item_data.get("quantity", 1),
                price=item_data["price"],
                color=item_data.get("color", ""),
                size=item_data.get("size"),
                ikpu_code=item_data.get("ikpu_code", ""),
                package_code=item_data.get("package_code", ""),
                vat_percent=item_data.get("vat_percent"),
            )

        logger.bind(order_id=str(order.id), item_count=len(items)).info(
            "order.created"
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with its items.

        Returns ``None`` for non-existent or malformed IDs; gateways send
        arbitrary strings as the merchant reference.
        """
        try:
            return Order.objects.prefetch_related("items").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_provider_transaction_id(
        self, provider: str, transaction_id: str
    ) -> Optional[Order]:
        return (
            Order.objects.prefetch_related("items")
            .filter(
                payment_provider=provider,
                provider_transaction_id=str(transaction_id),
            )
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = Order.objects.prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def list_for_provider(
        self, provider: str, start: datetime, end: datetime
    ) -> List[Order]:
        return list(
            Order.objects.filter(
                payment_provider=provider,
                provider_transaction_id__isnull=False,
                created_at__gte=start,
                created_at__lte=end,
            ).order_by("created_at")
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist non-payment fields.  Payment fields go through CAS."""
        entity.save()
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    def compare_and_set(self, order: Order, changes: Dict[str, Any]) -> Order:
        expected_version = order.version
        expected_status = order.payment_status
        log = logger.bind(
            order_id=str(order.id),
            version=expected_version,
            expected_status=expected_status,
        )

        try:
            with transaction.atomic():
                updated = Order.objects.filter(
                    id=order.id,
                    version=expected_version,
                    payment_status=expected_status,
                ).update(
                    **changes,
                    version=F("version") + 1,
                    updated_at=timezone.now(),
                )
        except IntegrityError as exc:
            log.warning("order.transaction_id_taken")
            raise ProviderConflict(
                f"Transaction {changes.get('provider_transaction_id')} "
                "is already bound to another order."
            ) from exc

        if updated == 0:
            log.warning("order.concurrent_update_detected")
            raise ConcurrentOrderUpdate(
                f"Order {order.id} changed since version {expected_version}."
            )

        for field, value in changes.items():
            setattr(order, field, value)
        order.version = expected_version + 1
        log.info("order.payment_fields_updated", fields=sorted(changes))
        return order
