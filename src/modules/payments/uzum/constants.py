"""Uzum Bank merchant API vocabulary."""

from enum import Enum


class UzumOperation(str, Enum):
    CHECK = "check"
    CREATE = "create"
    CONFIRM = "confirm"
    REVERSE = "reverse"
    STATUS = "status"


class UzumStatus(str, Enum):
    """Transaction states reported back to Uzum."""

    OK = "OK"
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    REVERSED = "REVERSED"
    FAILED = "FAILED"


class UzumError(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_SERVICE = "INVALID_SERVICE"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_REQUEST = "INVALID_REQUEST"
    SYSTEM_ERROR = "SYSTEM_ERROR"


ERROR_MESSAGES = {
    UzumError.UNAUTHORIZED: "Invalid credentials",
    UzumError.INVALID_SERVICE: "Invalid service ID",
    UzumError.ORDER_NOT_FOUND: "Order not found",
    UzumError.INVALID_AMOUNT: "Invalid amount",
    UzumError.INVALID_REQUEST: "Invalid request format",
    UzumError.SYSTEM_ERROR: "System error",
}

# Operations that address the order through ``params.account``; the rest
# find it by the bound ``transId``.
ACCOUNT_OPERATIONS = {UzumOperation.CHECK, UzumOperation.CREATE, UzumOperation.CONFIRM}
