"""Payme merchant API (JSON-RPC 2.0).

Payme drives the payment through six methods posted to one endpoint:

``CheckPerformTransaction``  read-only; validates the order and amount
                             and returns the fiscal receipt detail.
``CreateTransaction``        binds the Payme transaction id to the order
                             (``pending -> processing``).
``PerformTransaction``       completes the order.
``CancelTransaction``        cancels before payment, refunds after.
``CheckTransaction``         read-only state of a transaction.
``GetStatement``             Payme transactions created in a time window.

Amounts are tiyin on both sides, so they are compared as integers
without conversion.  Times are epoch milliseconds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

import structlog

from modules.orders.constants import PaymentProvider, PaymentStatus
from modules.orders.exceptions import (
    AlreadyCompletedConflict,
    AmountMismatch,
    InvalidPaymentTransition,
    OrderNotFound,
    ProviderConflict,
)
from modules.payments.auth import check_basic_auth, log_verification_bypass
from modules.payments.exceptions import GatewayAuthError, PaymentRequestError
from modules.payments.payme.constants import (
    JSONRPC_VERSION,
    PaymeErrorCode,
    PaymeMethod,
    PaymeState,
)
from modules.payments.payme.errors import PaymeError
from modules.payments.payme.receipts import (
    FiscalCatalog,
    NullFiscalCatalog,
    build_receipt_detail,
)
from modules.payments.utils import epoch_ms, from_epoch_ms, parse_minor

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.services import PaymentTransitionService

logger = structlog.get_logger(__name__)

PROVIDER = PaymentProvider.PAYME

STATE_BY_PAYMENT_STATUS = {
    PaymentStatus.PENDING: PaymeState.CREATED,
    PaymentStatus.PROCESSING: PaymeState.CREATED,
    PaymentStatus.COMPLETED: PaymeState.PERFORMED,
    PaymentStatus.CANCELLED: PaymeState.CANCELLED,
    PaymentStatus.FAILED: PaymeState.CANCELLED,
    PaymentStatus.REFUNDED: PaymeState.REFUNDED,
}

PERFORMED_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.REFUNDED}
CANCELLED_STATUSES = {PaymentStatus.CANCELLED, PaymentStatus.REFUNDED}


def jsonrpc_result(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def jsonrpc_error(request_id: Any, error: PaymeError) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.as_dict()}


class PaymeMerchantService:
    """Application service for the Payme Merchant API (JSON-RPC 2.0).

    Method handlers return the ``result`` object or raise ``PaymeError``;
    ``handle`` wraps either into the JSON-RPC envelope.
    """

    def __init__(
        self,
        transitions: PaymentTransitionService,
        merchant_login: str,
        merchant_key: str,
        test_mode: bool = False,
        fiscal_catalog: Optional[FiscalCatalog] = None,
        default_ikpu: str = "00000000000000000",
        default_vat_percent: int = 12,
    ) -> None:
        self._transitions = transitions
        self._merchant_login = merchant_login or ""
        self._merchant_key = merchant_key or ""
        self._test_mode = test_mode
        self._catalog = fiscal_catalog or NullFiscalCatalog()
        self._default_ikpu = default_ikpu
        self._default_vat_percent = default_vat_percent
        self._methods: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            PaymeMethod.CHECK_PERFORM_TRANSACTION: self.check_perform_transaction,
            PaymeMethod.CREATE_TRANSACTION: self.create_transaction,
            PaymeMethod.PERFORM_TRANSACTION: self.perform_transaction,
            PaymeMethod.CANCEL_TRANSACTION: self.cancel_transaction,
            PaymeMethod.CHECK_TRANSACTION: self.check_transaction,
            PaymeMethod.GET_STATEMENT: self.get_statement,
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def authenticate(self, authorization: Optional[str]) -> None:
        """Raise ``GatewayAuthError`` unless ``Basic base64(login:key)`` matches."""
        if self._test_mode:
            log_verification_bypass(PROVIDER)
            return
        if not check_basic_auth(authorization, self._merchant_login, self._merchant_key):
            logger.warning("payme.unauthorized")
            raise GatewayAuthError("Invalid Payme credentials.")

    @staticmethod
    def unauthorized(payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """The ``-32504`` envelope sent with HTTP 401."""
        request_id = payload.get("id") if payload else None
        return jsonrpc_error(
            request_id,
            PaymeError(
                PaymeErrorCode.UNAUTHORIZED,
                "Insufficient privileges to perform this method.",
            ),
        )

    def handle(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Dispatch one JSON-RPC request; always returns an envelope."""
        if payload is None:
            logger.warning("payme.parse_error")
            return jsonrpc_error(
                None, PaymeError(PaymeErrorCode.PARSE_ERROR, "Parse error")
            )

        request_id = payload.get("id")
        method = payload.get("method")
        params = payload.get("params")
        log = logger.bind(method=method, request_id=request_id)

        try:
            if not isinstance(method, str) or not method:
                raise PaymeError(
                    PaymeErrorCode.INVALID_REQUEST, "Invalid Request: method is required"
                )
            handler = self._methods.get(method)
            if handler is None:
                raise PaymeError(
                    PaymeErrorCode.METHOD_NOT_FOUND, "Method not found", method
                )
            if not isinstance(params, dict):
                raise PaymeError(PaymeErrorCode.INVALID_PARAMS, "Invalid params")
            result = handler(params)
        except PaymeError as exc:
            log.warning("payme.request_rejected", code=int(exc.code), reason=exc.message)
            return jsonrpc_error(request_id, exc)
        except Exception:
            log.exception("payme.unexpected_error")
            return jsonrpc_error(
                request_id, PaymeError(PaymeErrorCode.SYSTEM_ERROR, "System error")
            )

        log.info("payme.request_succeeded")
        return jsonrpc_result(request_id, result)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _order_from_account(self, params: Dict[str, Any]) -> Order:
        account = params.get("account")
        order_id = account.get("order_id") if isinstance(account, dict) else None
        if order_id is None or str(order_id).strip() == "":
            raise PaymeError(
                PaymeErrorCode.INVALID_ACCOUNT, "Invalid account parameter", "order_id"
            )
        try:
            return self._transitions.get_order(str(order_id).strip())
        except OrderNotFound as exc:
            raise PaymeError(
                PaymeErrorCode.ORDER_NOT_FOUND, f"Order not found: {order_id}", "order_id"
            ) from exc

    def _order_from_transaction(self, params: Dict[str, Any]) -> Order:
        transaction_id = params.get("id") or params.get("transaction_id")
        if not transaction_id:
            raise PaymeError(
                PaymeErrorCode.INVALID_PARAMS, "Transaction id is required", "id"
            )
        order = self._transitions.find_by_transaction(PROVIDER, str(transaction_id))
        if order is None:
            raise PaymeError(
                PaymeErrorCode.TRANSACTION_NOT_FOUND,
                f"Transaction not found: {transaction_id}",
            )
        return order

    @staticmethod
    def _amount(params: Dict[str, Any]) -> int:
        try:
            return parse_minor(params.get("amount"))
        except PaymentRequestError as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_AMOUNT, "Invalid amount", "amount"
            ) from exc

    @staticmethod
    def _transaction_view(order: Order) -> Dict[str, Any]:
        meta = order.meta_for(PROVIDER)
        status = PaymentStatus(order.payment_status)
        return {
            "transaction_id": order.provider_transaction_id,
            "transaction": str(order.id),
            "state": int(STATE_BY_PAYMENT_STATUS[status]),
            "create_time": meta.create_time,
            "perform_time": meta.perform_time if status in PERFORMED_STATUSES else 0,
            "cancel_time": meta.cancel_time if status in CANCELLED_STATUSES else 0,
            "reason": meta.cancel_reason if status in CANCELLED_STATUSES else None,
        }

    def _now_ms(self) -> int:
        return epoch_ms(self._transitions.now())

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def check_perform_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Check the order is payable for ``amount`` and return its receipt."""
        order = self._order_from_account(params)
        amount = self._amount(params)

        if order.payment_status == PaymentStatus.COMPLETED:
            raise PaymeError(PaymeErrorCode.CANNOT_PERFORM, "Order is already paid")
        if order.is_bound:
            raise PaymeError(
                PaymeErrorCode.ANOTHER_TRANSACTION,
                "Order already has another active transaction",
            )
        if not order.is_payable:
            raise PaymeError(
                PaymeErrorCode.CANNOT_PERFORM,
                f"Cannot perform transaction. Order status: {order.payment_status}",
            )
        try:
            self._transitions.ensure_amount(order, amount)
        except AmountMismatch as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_AMOUNT,
                f"Amount mismatch. Expected: {exc.expected}, Got: {exc.received}",
                "amount",
            ) from exc

        try:
            detail = self._receipt(order)
        except ValueError as exc:
            raise PaymeError(
                PaymeErrorCode.CANNOT_PERFORM, "Error building receipt detail"
            ) from exc
        return {"allow": True, "detail": detail}

    def create_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Bind the order to the Payme transaction (state 1).

        Repeating the call for the same ``id`` returns the stored
        ``create_time``; a different ``id`` on a bound order is ``-31099``.
        """
        transaction_id = params.get("id")
        if not transaction_id:
            raise PaymeError(
                PaymeErrorCode.INVALID_PARAMS, "Transaction id is required", "id"
            )
        transaction_id = str(transaction_id)
        order = self._order_from_account(params)
        amount = self._amount(params)

        if order.is_bound_to(PROVIDER, transaction_id):
            if order.payment_status != PaymentStatus.PROCESSING:
                raise PaymeError(
                    PaymeErrorCode.CANNOT_PERFORM,
                    f"Transaction is in status {order.payment_status}",
                )
            return self._transaction_view(order)

        meta = order.meta_for(PROVIDER).model_copy(
            update={
                "transaction_id": transaction_id,
                "amount": amount,
                "create_time": self._now_ms(),
            }
        )
        try:
            result = self._transitions.begin(
                order, PROVIDER, transaction_id, amount, meta
            )
        except AmountMismatch as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_AMOUNT,
                f"Amount mismatch. Expected: {exc.expected}, Got: {exc.received}",
                "amount",
            ) from exc
        except (ProviderConflict, AlreadyCompletedConflict) as exc:
            raise PaymeError(
                PaymeErrorCode.ANOTHER_TRANSACTION,
                "Order already has another active transaction",
            ) from exc
        except InvalidPaymentTransition as exc:
            raise PaymeError(
                PaymeErrorCode.CANNOT_PERFORM,
                f"Cannot perform transaction. Order status: {order.payment_status}",
            ) from exc
        return self._transaction_view(result.order)

    def perform_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Complete the order (state 2); replays keep the first ``perform_time``."""
        order = self._order_from_transaction(params)
        meta = order.meta_for(PROVIDER)
        amount = self._amount(params) if params.get("amount") is not None else meta.amount

        update: Dict[str, Any] = {"perform_time": self._now_ms()}
        try:
            update["receipt"] = self._receipt(order)
        except ValueError:
            logger.warning("payme.receipt_unavailable", order_id=str(order.id))
        try:
            result = self._transitions.complete(
                order,
                PROVIDER,
                order.provider_transaction_id,
                amount,
                meta.model_copy(update=update),
                notification_extra={"Payme transaction": order.provider_transaction_id},
            )
        except AmountMismatch as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_AMOUNT,
                f"Amount mismatch. Expected: {exc.expected}, Got: {exc.received}",
                "amount",
            ) from exc
        except (
            InvalidPaymentTransition,
            AlreadyCompletedConflict,
            ProviderConflict,
        ) as exc:
            raise PaymeError(
                PaymeErrorCode.CANNOT_PERFORM,
                f"Cannot perform. Current status: {order.payment_status}",
            ) from exc
        return self._transaction_view(result.order)

    def cancel_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Cancel before payment (state -1) or refund after it (state -2)."""
        order = self._order_from_transaction(params)
        try:
            reason = int(params["reason"]) if params.get("reason") is not None else None
        except (TypeError, ValueError) as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_PARAMS, "Invalid reason", "reason"
            ) from exc

        meta = order.meta_for(PROVIDER).model_copy(
            update={"cancel_time": self._now_ms(), "cancel_reason": reason}
        )
        try:
            result = self._transitions.reverse(order, meta)
        except InvalidPaymentTransition as exc:
            raise PaymeError(
                PaymeErrorCode.CANNOT_CANCEL,
                f"Cannot cancel. Current status: {order.payment_status}",
            ) from exc
        return self._transaction_view(result.order)

    def check_transaction(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Current state and timestamps of a Payme transaction."""
        return self._transaction_view(self._order_from_transaction(params))

    def get_statement(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Payme transactions in the ``from`` / ``to`` window."""
        try:
            start = from_epoch_ms(params.get("from"))
            end = from_epoch_ms(params.get("to"))
        except PaymentRequestError as exc:
            raise PaymeError(
                PaymeErrorCode.INVALID_PARAMS, "from and to parameters are required"
            ) from exc

        transactions = []
        for order in self._transitions.list_for_provider(PROVIDER, start, end):
            view = self._transaction_view(order)
            transactions.append(
                {
                    "id": view.pop("transaction_id"),
                    "time": view["create_time"],
                    "amount": order.amount,
                    "account": {"order_id": str(order.id)},
                    "receipts": [],
                    **view,
                }
            )
        return {"transactions": transactions}

    def _receipt(self, order: Order) -> Dict[str, Any]:
        return build_receipt_detail(
            order, self._catalog, self._default_ikpu, self._default_vat_percent
        )
