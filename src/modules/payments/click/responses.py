"""Click reply bodies: always HTTP 200, outcome encoded in ``error``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from modules.payments.click.constants import ERROR_NOTES, ClickError


def click_response(
    code: ClickError, note: Optional[str] = None, **extra: Any
) -> Dict[str, Any]:
    return {
        "error": int(code),
        "error_note": note if note is not None else ERROR_NOTES[code],
        **extra,
    }


def prepare_success(payload, order_id: str) -> Dict[str, Any]:
    return click_response(
        ClickError.SUCCESS,
        click_trans_id=payload.click_trans_id,
        merchant_trans_id=payload.merchant_trans_id,
        merchant_prepare_id=order_id,
    )


def complete_success(payload, order_id: str) -> Dict[str, Any]:
    return click_response(
        ClickError.SUCCESS,
        click_trans_id=payload.click_trans_id,
        merchant_trans_id=payload.merchant_trans_id,
        merchant_confirm_id=order_id,
    )
