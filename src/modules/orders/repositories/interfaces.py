"""Order repository interface.

Extends ``IRepository[Order]`` with the look-ups the gateways need
(by provider transaction id, statement windows) and the conditional
write every payment transition goes through.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``amount`` (minor units) and ``items`` (list
        of dicts with ``product_id``, ``name``, ``quantity``, ``price``);
        customer fields and fiscal codes are optional.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items; ``None`` for bad ids."""

    @abstractmethod
    def get_by_provider_transaction_id(
        self, provider: str, transaction_id: str
    ) -> Optional[Order]:
        """Retrieve the order bound to a gateway transaction id."""

    @abstractmethod
    def list_for_provider(
        self, provider: str, start: datetime, end: datetime
    ) -> List[Order]:
        """Orders bound to *provider* and created within ``[start, end]``."""

    @abstractmethod
    def compare_and_set(self, order: Order, changes: Dict[str, Any]) -> Order:
        """Apply *changes* only if the stored row still matches *order*.

        The write is conditioned on the ``version`` and ``payment_status``
        the caller observed and bumps ``version``.

        Raises:
            ConcurrentOrderUpdate: the row changed since it was read.
            ProviderConflict: the transaction id is bound to another order.
        """
