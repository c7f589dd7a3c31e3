"""Click request signature.

``sign_string = md5(click_trans_id + service_id + SECRET_KEY +
merchant_trans_id [+ merchant_prepare_id] + amount + action + sign_time)``
where ``merchant_prepare_id`` takes part only in COMPLETE requests.
"""

from __future__ import annotations

import hashlib
import hmac

from modules.payments.click.constants import ClickAction
from modules.payments.click.dtos import ClickCallbackDTO


def build_sign_source(payload: ClickCallbackDTO, secret_key: str) -> str:
    parts = [
        payload.click_trans_id,
        payload.service_id,
        secret_key,
        payload.merchant_trans_id,
    ]
    if payload.action == ClickAction.COMPLETE:
        parts.append(payload.merchant_prepare_id or "")
    parts += [payload.amount, str(payload.action), payload.sign_time]
    return "".join(parts)


def compute_signature(payload: ClickCallbackDTO, secret_key: str) -> str:
    source = build_sign_source(payload, secret_key)
    return hashlib.md5(source.encode("utf-8")).hexdigest()


def verify_signature(payload: ClickCallbackDTO, secret_key: str) -> bool:
    if not secret_key:
        return False
    expected = compute_signature(payload, secret_key)
    return hmac.compare_digest(expected, payload.sign_string.lower())
