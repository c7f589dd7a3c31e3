"""Stock repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.inventory.models import Stock


class IStockRepository(IRepository["Stock"]):
    @abstractmethod
    def get_variant_for_update(
        self, product_id: int, color: Optional[str], size: Optional[str]
    ) -> Optional[Stock]:
        """Lock and return the stock row for a variant, if any.

        Empty or missing colour / size mean "no variant".
        """
