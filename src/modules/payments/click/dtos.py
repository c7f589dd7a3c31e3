"""Click callback payload.

Click posts form-encoded (or JSON) bodies whose numeric fields may arrive
as numbers or strings.  Identifier and amount fields are kept as the raw
strings received because the signature is computed over them verbatim.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class ClickCallbackDTO(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True, extra="ignore")

    click_trans_id: str
    service_id: str
    click_paydoc_id: Optional[str] = None
    merchant_trans_id: str
    merchant_prepare_id: Optional[str] = None
    amount: str
    action: int
    error: int = 0
    error_note: str = ""
    sign_time: str
    sign_string: str

    @field_validator("click_trans_id", "service_id", "merchant_trans_id", "sign_string")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field must not be blank.")
        return v.strip()
