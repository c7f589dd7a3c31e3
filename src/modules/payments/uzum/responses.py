"""Uzum reply bodies: ``{...data, status}``."""

from __future__ import annotations

from typing import Any, Dict, Optional

from modules.payments.uzum.constants import ERROR_MESSAGES, UzumError, UzumStatus


def uzum_response(status: UzumStatus, **data: Any) -> Dict[str, Any]:
    return {**data, "status": status.value}


def uzum_error(error: UzumError, message: Optional[str] = None) -> Dict[str, Any]:
    return {"status": error.value, "error": message or ERROR_MESSAGES[error]}
