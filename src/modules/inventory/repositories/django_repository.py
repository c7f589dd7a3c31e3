"""Django ORM implementation of the Stock repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.db import transaction

from modules.inventory.models import Stock
from modules.inventory.repositories.interfaces import IStockRepository

logger = structlog.get_logger(__name__)


class StockDjangoRepository(IStockRepository):
    def get_by_id(self, id: str) -> Optional[Stock]:
        return Stock.objects.filter(id=id).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Stock]:
        queryset = Stock.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Stock) -> Stock:
        entity.save()
        return entity

    def get_variant_for_update(
        self, product_id: int, color: Optional[str], size: Optional[str]
    ) -> Optional[Stock]:
        return (
            Stock.objects.select_for_update()
            .filter(product_id=product_id, color=color or "", size=size or "")
            .first()
        )
