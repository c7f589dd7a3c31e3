"""Fiscal receipt detail returned by ``CheckPerformTransaction``.

Payme fiscalizes every payment and needs, per line item, the IKPU
(``code``), the package code and the VAT rate.  Codes come from the
fiscal catalog when it knows the product, otherwise from the snapshot
taken on the order item at checkout, otherwise from the configured
defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol

from modules.payments.payme.constants import ReceiptType

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem


@dataclass(frozen=True)
class FiscalCode:
    ikpu_code: str
    package_code: str = ""
    vat_percent: Optional[int] = None


class FiscalCatalog(Protocol):
    def lookup(self, catalog_product_id: Optional[int]) -> Optional[FiscalCode]: ...


class NullFiscalCatalog:
    def lookup(self, catalog_product_id: Optional[int]) -> Optional[FiscalCode]:
        return None


class MappingFiscalCatalog:
    """Catalog backed by ``{product_id: {"ikpu_code": ..., ...}}``."""

    def __init__(self, entries: Mapping[Any, Mapping[str, Any]]) -> None:
        self._entries = {str(key): value for key, value in entries.items()}

    def lookup(self, catalog_product_id: Optional[int]) -> Optional[FiscalCode]:
        if catalog_product_id is None:
            return None
        entry = self._entries.get(str(catalog_product_id))
        if not entry or not entry.get("ikpu_code"):
            return None
        return FiscalCode(
            ikpu_code=str(entry["ikpu_code"]),
            package_code=str(entry.get("package_code") or ""),
            vat_percent=entry.get("vat_percent"),
        )


def _item_title(item: OrderItem) -> str:
    return f"{item.name} ({item.size})" if item.size else item.name


def build_receipt_item(
    item: OrderItem,
    catalog: FiscalCatalog,
    default_ikpu: str,
    default_vat_percent: int,
) -> Dict[str, Any]:
    code = catalog.lookup(item.catalog_product_id)
    if code is None:
        code = FiscalCode(
            ikpu_code=item.ikpu_code or default_ikpu,
            package_code=item.package_code,
            vat_percent=item.vat_percent,
        )
    vat_percent = code.vat_percent if code.vat_percent is not None else default_vat_percent
    return {
        "title": _item_title(item),
        "price": item.price,
        "count": item.quantity,
        "code": code.ikpu_code,
        "vat_percent": vat_percent,
        "package_code": code.package_code,
    }


def build_receipt_detail(
    order: Order,
    catalog: FiscalCatalog,
    default_ikpu: str,
    default_vat_percent: int,
) -> Dict[str, Any]:
    """Receipt for *order*; raises ``ValueError`` when it has no items."""
    items = list(order.items.all())
    if not items:
        raise ValueError(f"Order {order.id} has no items to fiscalize.")
    return {
        "receipt_type": int(ReceiptType.SELL),
        "items": [
            build_receipt_item(item, catalog, default_ikpu, default_vat_percent)
            for item in items
        ],
    }
