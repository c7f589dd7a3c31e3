"""Caller verification helpers and the provider test-mode gate.

Each gateway has a ``<PROVIDER>_TEST_MODE`` flag that disables its
signature / credential check for sandbox runs.  A flag is honoured only
when ``PAYMENTS_ALLOW_TEST_MODE`` is also on; every bypassed request is
logged at WARNING level.
"""

from __future__ import annotations

import base64
import binascii
import hmac
from typing import Dict, Optional, Tuple

import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)

TEST_MODE_SETTINGS: Dict[str, str] = {
    "click": "CLICK_TEST_MODE",
    "uzum": "UZUM_TEST_MODE",
    "payme": "PAYME_TEST_MODE",
}


def test_mode_requested(provider: str) -> bool:
    return bool(getattr(settings, TEST_MODE_SETTINGS[provider], False))


def test_mode_active(provider: str) -> bool:
    """True only when the provider flag *and* the global allowance are set."""
    return test_mode_requested(provider) and bool(settings.PAYMENTS_ALLOW_TEST_MODE)


def log_verification_bypass(provider: str) -> None:
    logger.warning(
        "payments.verification_bypassed",
        provider=provider,
        detail="TEST MODE: caller verification is disabled",
    )


def constant_time_equals(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def parse_basic_auth(header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Decode ``Basic base64(user:password)``; ``None`` when malformed."""
    if not header:
        return None
    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


def check_basic_auth(header: Optional[str], username: str, password: str) -> bool:
    """Constant-time check of a Basic header; unconfigured credentials fail."""
    if not username or not password:
        return False
    credentials = parse_basic_auth(header)
    if credentials is None:
        return False
    user_ok = constant_time_equals(credentials[0], username)
    password_ok = constant_time_equals(credentials[1], password)
    return user_ok and password_ok


def gateway_status() -> Dict[str, Dict[str, bool]]:
    """Configuration summary per gateway (no secrets)."""
    return {
        "click": {
            "configured": bool(settings.CLICK_SERVICE_ID and settings.CLICK_SECRET_KEY),
            "test_mode": test_mode_active("click"),
        },
        "uzum": {
            "configured": bool(
                settings.UZUM_SERVICE_ID
                and settings.UZUM_USERNAME
                and settings.UZUM_PASSWORD
            ),
            "test_mode": test_mode_active("uzum"),
        },
        "payme": {
            "configured": bool(settings.PAYME_MERCHANT_KEY),
            "test_mode": test_mode_active("payme"),
        },
    }
