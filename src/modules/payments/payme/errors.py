"""JSON-RPC error carrying a Payme error code."""

from __future__ import annotations

from typing import Any, Dict, Optional

from modules.payments.payme.constants import PaymeErrorCode


class PaymeError(Exception):
    def __init__(
        self, code: PaymeErrorCode, message: str, data: Optional[Any] = None
    ) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"{int(code)}: {message}")

    def as_dict(self) -> Dict[str, Any]:
        return {"code": int(self.code), "message": self.message, "data": self.data}
