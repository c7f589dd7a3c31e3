"""Payme (Paycom) merchant API vocabulary."""

from enum import IntEnum


class PaymeMethod:
    CHECK_PERFORM_TRANSACTION = "CheckPerformTransaction"
    CREATE_TRANSACTION = "CreateTransaction"
    PERFORM_TRANSACTION = "PerformTransaction"
    CANCEL_TRANSACTION = "CancelTransaction"
    CHECK_TRANSACTION = "CheckTransaction"
    GET_STATEMENT = "GetStatement"


class PaymeState(IntEnum):
    CREATED = 1
    PERFORMED = 2
    CANCELLED = -1
    REFUNDED = -2


class PaymeErrorCode(IntEnum):
    INVALID_AMOUNT = -31001
    ORDER_NOT_FOUND = -31003
    CANNOT_CANCEL = -31007
    CANNOT_PERFORM = -31008
    TRANSACTION_NOT_FOUND = -31016
    INVALID_ACCOUNT = -31050
    ANOTHER_TRANSACTION = -31099
    SYSTEM_ERROR = -32400
    UNAUTHORIZED = -32504
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    PARSE_ERROR = -32700


class ReceiptType(IntEnum):
    SELL = 0
    RETURN = 1
    CORRECTION = 2


JSONRPC_VERSION = "2.0"
