"""Provider-specific payment metadata.

Each gateway keeps its own audit trail on the order (timestamps, gateway
sub-ids, error notes).  The variants form a Pydantic v2 discriminated
union keyed by ``provider`` so a Click order can never carry Payme fields
and vice versa.  Variants are immutable (``frozen=True``); writers derive
a new value with ``model_copy(update=...)`` and hand it to the transition
service, which persists ``dump_meta(meta)`` into ``Order.meta``.

Meta is bookkeeping only.  No authorization decision ever reads it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _ProviderMeta(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ClickMeta(_ProviderMeta):
    provider: Literal["click"] = "click"
    prepared_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    paydoc_id: Optional[str] = None
    error_code: Optional[int] = None
    error_note: Optional[str] = None


class UzumMeta(_ProviderMeta):
    provider: Literal["uzum"] = "uzum"
    trans_id: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    payment_source: Optional[str] = None
    phone: Optional[str] = None
    card_type: Optional[str] = None
    expired: bool = False


class PaymeMeta(_ProviderMeta):
    """Payme timestamps are kept as the epoch milliseconds the protocol uses."""

    provider: Literal["payme"] = "payme"
    transaction_id: Optional[str] = None
    amount: Optional[int] = None
    create_time: int = 0
    perform_time: int = 0
    cancel_time: int = 0
    cancel_reason: Optional[int] = None
    receipt: Optional[Dict[str, Any]] = None


ProviderMeta = Annotated[
    Union[ClickMeta, UzumMeta, PaymeMeta], Field(discriminator="provider")
]

_META_ADAPTER: TypeAdapter = TypeAdapter(ProviderMeta)

META_BY_PROVIDER = {
    "click": ClickMeta,
    "uzum": UzumMeta,
    "payme": PaymeMeta,
}


def parse_meta(data: Optional[Dict[str, Any]]) -> Optional[ProviderMeta]:
    """Parse the stored JSON into its variant; ``None`` for an empty bag."""
    if not data:
        return None
    return _META_ADAPTER.validate_python(data)


def dump_meta(meta: ProviderMeta) -> Dict[str, Any]:
    return meta.model_dump(mode="json")
