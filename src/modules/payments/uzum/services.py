"""Uzum Bank merchant callbacks: check / create / confirm / reverse / status.

Every endpoint is authenticated with HTTP Basic credentials.  ``check``,
``create`` and ``confirm`` address the order through ``params.account``;
``reverse`` and ``status`` find it by the ``transId`` bound at ``create``.

``status`` applies the 30-minute lazy expiry: a transaction still
``CREATED`` past the timeout is stored and reported as ``FAILED``.  Uzum
polls ``status`` when a confirm goes unanswered and depends on this
behaviour, so the mutation on a read-shaped endpoint is deliberate.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

import structlog
from pydantic import ValidationError

from modules.orders.constants import UZUM_CREATE_TIMEOUT, PaymentProvider, PaymentStatus
from modules.orders.exceptions import (
    AlreadyCompletedConflict,
    AmountMismatch,
    InvalidPaymentTransition,
    OrderNotFound,
    ProviderConflict,
)
from modules.payments.auth import (
    check_basic_auth,
    constant_time_equals,
    log_verification_bypass,
)
from modules.payments.exceptions import GatewayAuthError, PaymentRequestError
from modules.payments.utils import epoch_ms, parse_minor
from modules.payments.uzum.constants import (
    ACCOUNT_OPERATIONS,
    UzumError,
    UzumOperation,
    UzumStatus,
)
from modules.payments.uzum.dtos import UzumCallbackDTO
from modules.payments.uzum.responses import uzum_error, uzum_response

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.services import PaymentTransitionService

logger = structlog.get_logger(__name__)

PROVIDER = PaymentProvider.UZUM

STATUS_BY_PAYMENT_STATUS = {
    PaymentStatus.PENDING: UzumStatus.CREATED,
    PaymentStatus.PROCESSING: UzumStatus.CREATED,
    PaymentStatus.COMPLETED: UzumStatus.CONFIRMED,
    PaymentStatus.CANCELLED: UzumStatus.REVERSED,
    PaymentStatus.REFUNDED: UzumStatus.REVERSED,
    PaymentStatus.FAILED: UzumStatus.FAILED,
}


class UzumMerchantService:
    """Application service for the Uzum Bank merchant callbacks.

    One method per operation (check, create, confirm, reverse, status),
    all behind Basic authentication and a service id check.
    """

    def __init__(
        self,
        transitions: PaymentTransitionService,
        service_id: str,
        username: str,
        password: str,
        test_mode: bool = False,
        create_timeout: timedelta = UZUM_CREATE_TIMEOUT,
    ) -> None:
        self._transitions = transitions
        self._service_id = str(service_id or "")
        self._username = username or ""
        self._password = password or ""
        self._test_mode = test_mode
        self._create_timeout = create_timeout
        self._handlers: Dict[UzumOperation, Callable[..., Dict[str, Any]]] = {
            UzumOperation.CHECK: self.check,
            UzumOperation.CREATE: self.create,
            UzumOperation.CONFIRM: self.confirm,
            UzumOperation.REVERSE: self.reverse,
            UzumOperation.STATUS: self.status,
        }

    def authenticate(self, authorization: Optional[str]) -> None:
        """Raise ``GatewayAuthError`` unless the Basic credentials match."""
        if self._test_mode:
            log_verification_bypass(PROVIDER)
            return
        if not check_basic_auth(authorization, self._username, self._password):
            logger.warning("uzum.unauthorized")
            raise GatewayAuthError("Invalid Uzum credentials.")

    def handle(
        self, operation: UzumOperation, payload: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Validate the callback and dispatch it to the operation handler."""
        try:
            return self._handle(UzumOperation(operation), payload)
        except Exception:
            logger.exception("uzum.unexpected_error", operation=str(operation))
            return uzum_error(UzumError.SYSTEM_ERROR)

    def _handle(
        self, operation: UzumOperation, payload: Optional[Mapping[str, Any]]
    ) -> Dict[str, Any]:
        log = logger.bind(operation=operation.value)
        if payload is None:
            log.warning("uzum.malformed_request")
            return uzum_error(UzumError.INVALID_REQUEST)
        try:
            request = UzumCallbackDTO.model_validate(dict(payload))
        except ValidationError as exc:
            log.warning("uzum.malformed_request", errors=exc.error_count())
            return uzum_error(UzumError.INVALID_REQUEST)

        if not self._service_id:
            log.error("uzum.service_id_not_configured")
            return uzum_error(UzumError.SYSTEM_ERROR)
        if not constant_time_equals(request.service_id, self._service_id):
            log.warning("uzum.invalid_service_id", service_id=request.service_id)
            return uzum_error(UzumError.INVALID_SERVICE)

        if operation in ACCOUNT_OPERATIONS and request.account is None:
            log.warning("uzum.missing_account")
            return uzum_error(UzumError.INVALID_REQUEST)
        if operation != UzumOperation.CHECK and not request.trans_id:
            log.warning("uzum.missing_trans_id")
            return uzum_error(UzumError.INVALID_REQUEST)

        return self._handlers[operation](request)

    # ------------------------------------------------------------------
    # check
    # ------------------------------------------------------------------

    def check(self, request: UzumCallbackDTO) -> Dict[str, Any]:
        """Report whether the order exists and can still be paid."""
        log = logger.bind(account=request.account)
        try:
            order = self._transitions.get_order(request.account)
        except OrderNotFound:
            log.warning("uzum.check.order_not_found")
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        if not order.is_payable:
            log.warning("uzum.check.not_payable", status=order.payment_status)
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        log.info("uzum.check.succeeded")
        return uzum_response(
            UzumStatus.OK,
            serviceId=request.service_id,
            timestamp=epoch_ms(self._transitions.now()),
            data={"account": {"value": request.account}},
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(self, request: UzumCallbackDTO) -> Dict[str, Any]:
        """Bind the order to ``transId`` after checking the amount.

        Repeating create for the same transaction returns the original
        ``transTime``.
        """
        log = logger.bind(account=request.account, trans_id=request.trans_id)
        try:
            amount_minor = parse_minor(request.amount)
        except PaymentRequestError:
            log.warning("uzum.create.invalid_amount", amount=request.amount)
            return uzum_error(UzumError.INVALID_AMOUNT)

        try:
            order = self._transitions.get_order(request.account)
        except OrderNotFound:
            log.warning("uzum.create.order_not_found")
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        existing = self._transitions.find_by_transaction(PROVIDER, request.trans_id)
        if existing is not None and existing.id != order.id:
            log.error("uzum.create.duplicate_trans_id", bound_order_id=str(existing.id))
            return uzum_error(UzumError.SYSTEM_ERROR)

        meta = order.meta_for(PROVIDER).model_copy(
            update={"trans_id": request.trans_id, "created_at": self._transitions.now()}
        )
        try:
            result = self._transitions.begin(
                order, PROVIDER, request.trans_id, amount_minor, meta
            )
        except AmountMismatch as exc:
            log.warning(
                "uzum.create.amount_mismatch",
                expected=exc.expected,
                received=exc.received,
            )
            return uzum_error(UzumError.INVALID_AMOUNT)
        except ProviderConflict:
            log.error(
                "uzum.create.binding_conflict",
                bound_provider=order.payment_provider,
                bound_transaction_id=order.provider_transaction_id,
            )
            return uzum_error(UzumError.SYSTEM_ERROR)
        except (AlreadyCompletedConflict, InvalidPaymentTransition):
            log.warning("uzum.create.not_payable", status=order.payment_status)
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        order = result.order
        log.info("uzum.create.succeeded", replayed=result.replayed)
        return uzum_response(
            UzumStatus.CREATED,
            serviceId=request.service_id,
            transId=request.trans_id,
            transTime=epoch_ms(order.meta_for(PROVIDER).created_at),
            amount=amount_minor,
            data={"account": {"value": request.account}},
        )

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------

    def confirm(self, request: UzumCallbackDTO) -> Dict[str, Any]:
        """Complete the order bound to ``transId``; idempotent on replay."""
        log = logger.bind(account=request.account, trans_id=request.trans_id)
        try:
            order = self._transitions.get_order(request.account)
        except OrderNotFound:
            log.warning("uzum.confirm.order_not_found")
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        if not order.is_bound_to(PROVIDER, request.trans_id):
            log.warning(
                "uzum.confirm.trans_id_mismatch",
                status=order.payment_status,
                bound_provider=order.payment_provider,
                bound_transaction_id=order.provider_transaction_id,
            )
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        try:
            amount_minor = parse_minor(request.amount)
        except PaymentRequestError:
            log.warning("uzum.confirm.invalid_amount", amount=request.amount)
            return uzum_error(UzumError.INVALID_AMOUNT)

        meta = order.meta_for(PROVIDER).model_copy(
            update={
                "confirmed_at": self._transitions.now(),
                "payment_source": request.payment_source,
                "phone": request.phone,
                "card_type": request.card_type,
            }
        )
        extra = {
            "Uzum Trans ID": request.trans_id,
            "Payment source": request.payment_source or "",
            "Payer phone": request.phone or "",
        }
        try:
            result = self._transitions.complete(
                order,
                PROVIDER,
                request.trans_id,
                amount_minor,
                meta,
                notification_extra=extra,
            )
        except AmountMismatch as exc:
            log.warning(
                "uzum.confirm.amount_mismatch",
                expected=exc.expected,
                received=exc.received,
            )
            return uzum_error(UzumError.INVALID_AMOUNT)
        except (AlreadyCompletedConflict, ProviderConflict):
            log.error("uzum.confirm.conflict")
            return uzum_error(UzumError.ORDER_NOT_FOUND)
        except InvalidPaymentTransition:
            log.warning("uzum.confirm.not_payable", status=order.payment_status)
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        order = result.order
        log.info("uzum.confirm.succeeded", replayed=result.replayed)
        return uzum_response(
            UzumStatus.CONFIRMED,
            serviceId=request.service_id,
            transId=request.trans_id,
            confirmTime=epoch_ms(order.meta_for(PROVIDER).confirmed_at),
            amount=amount_minor,
        )

    # ------------------------------------------------------------------
    # reverse
    # ------------------------------------------------------------------

    def reverse(self, request: UzumCallbackDTO) -> Dict[str, Any]:
        """Cancel an unpaid transaction or refund a confirmed one."""
        log = logger.bind(trans_id=request.trans_id)
        order = self._transitions.find_by_transaction(PROVIDER, request.trans_id)
        if order is None:
            log.warning("uzum.reverse.transaction_not_found")
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        now = self._transitions.now()
        stamp = (
            "refunded_at"
            if self._transitions.reversal_status(order) == PaymentStatus.REFUNDED
            else "reversed_at"
        )
        meta = order.meta_for(PROVIDER).model_copy(update={stamp: now})
        try:
            result = self._transitions.reverse(order, meta)
        except InvalidPaymentTransition:
            log.warning("uzum.reverse.not_reversible", status=order.payment_status)
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        order = result.order
        log.info(
            "uzum.reverse.succeeded",
            order_id=str(order.id),
            new_status=order.payment_status,
            replayed=result.replayed,
        )
        return uzum_response(
            UzumStatus.REVERSED,
            serviceId=request.service_id,
            transId=request.trans_id,
            reverseTime=self._reverse_time(order),
            amount=order.amount,
        )

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def status(self, request: UzumCallbackDTO) -> Dict[str, Any]:
        """Report the transaction state, expiring stale creates first."""
        log = logger.bind(trans_id=request.trans_id)
        order = self._transitions.find_by_transaction(PROVIDER, request.trans_id)
        if order is None:
            log.warning("uzum.status.transaction_not_found")
            return uzum_error(UzumError.ORDER_NOT_FOUND)

        order = self._transitions.expire_if_stale(order, timeout=self._create_timeout)
        state = STATUS_BY_PAYMENT_STATUS[PaymentStatus(order.payment_status)]
        meta = order.meta_for(PROVIDER)

        log.info("uzum.status.reported", state=state.value)
        return uzum_response(
            state,
            serviceId=request.service_id,
            transId=request.trans_id,
            transTime=epoch_ms(meta.created_at) or request.timestamp,
            confirmTime=epoch_ms(meta.confirmed_at),
            reverseTime=self._reverse_time(order),
            amount=order.amount,
        )

    @staticmethod
    def _reverse_time(order: Order) -> Optional[int]:
        meta = order.meta_for(PROVIDER)
        return epoch_ms(meta.refunded_at or meta.reversed_at)
