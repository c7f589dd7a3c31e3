"""Click SHOP API protocol constants."""

from enum import IntEnum


class ClickAction(IntEnum):
    PREPARE = 0
    COMPLETE = 1


class ClickError(IntEnum):
    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INVALID_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    ORDER_NOT_FOUND = -5
    TRANSACTION_NOT_FOUND = -6
    BAD_REQUEST = -8
    TRANSACTION_CANCELLED = -9


ERROR_NOTES = {
    ClickError.SUCCESS: "Success",
    ClickError.SIGN_CHECK_FAILED: "SIGN CHECK FAILED",
    ClickError.INVALID_AMOUNT: "Invalid amount",
    ClickError.ACTION_NOT_FOUND: "Action not found",
    ClickError.ALREADY_PAID: "Already paid",
    ClickError.ORDER_NOT_FOUND: "Order not found",
    ClickError.TRANSACTION_NOT_FOUND: "Transaction does not exist",
    ClickError.BAD_REQUEST: "Error in request from click",
    ClickError.TRANSACTION_CANCELLED: "Transaction cancelled",
}

SYSTEM_ERROR_NOTE = "System error"
