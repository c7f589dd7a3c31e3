"""Uzum callback payload (camelCase on the wire)."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class UzumCallbackDTO(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    service_id: str = Field(alias="serviceId")
    timestamp: Optional[int] = None
    trans_id: Optional[str] = Field(default=None, alias="transId")
    amount: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    payment_source: Optional[str] = Field(default=None, alias="paymentSource")
    phone: Optional[str] = None
    card_type: Optional[str] = Field(default=None, alias="cardType")

    @property
    def account(self) -> Optional[str]:
        """Order reference passed by the storefront as ``params.account``."""
        value = self.params.get("account")
        if value is None or str(value).strip() == "":
            return None
        return str(value).strip()
