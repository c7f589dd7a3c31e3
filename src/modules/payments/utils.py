"""Amount and time conversions at the gateway boundary.

``Order.amount`` is always minor units (tiyin).  Click reports major
units (so'm, possibly with decimals); Uzum and Payme already report
tiyin.  Conversions happen here and nowhere else.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from modules.orders.constants import MINOR_UNITS_PER_MAJOR
from modules.payments.exceptions import PaymentRequestError


def major_to_minor(value: Any) -> int:
    """``"50000.005"`` so'm -> ``5000001`` tiyin (half-up)."""
    if isinstance(value, bool) or value is None or value == "":
        raise PaymentRequestError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise PaymentRequestError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise PaymentRequestError(f"Invalid amount: {value!r}")
    minor = (amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def parse_minor(value: Any) -> int:
    """Accept an integral tiyin amount (``500000``, ``"500000"``, ``500000.0``)."""
    if isinstance(value, bool) or value is None or value == "":
        raise PaymentRequestError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise PaymentRequestError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount < 0 or amount != amount.to_integral_value():
        raise PaymentRequestError(f"Invalid amount: {value!r}")
    return int(amount)


def epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp()) * 1000 + value.microsecond // 1000


def from_epoch_ms(value: Any) -> datetime:
    try:
        millis = int(value)
    except (TypeError, ValueError) as exc:
        raise PaymentRequestError(f"Invalid timestamp: {value!r}") from exc
    seconds, remainder = divmod(millis, 1000)
    return datetime.fromtimestamp(seconds, tz=dt_timezone.utc).replace(
        microsecond=remainder * 1000
    )
