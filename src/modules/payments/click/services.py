"""Click two-phase (PREPARE / COMPLETE) callback handling.

Flow for every request: parse -> service id -> signature -> action.

PREPARE validates the order and amount and binds it to the Click
transaction (``pending -> processing``); the order id is returned as
``merchant_prepare_id``.  COMPLETE must echo that id back; it then either
records the failure Click reports (``error < 0``) or re-checks the amount
and completes the order.

Every outcome, including internal errors, is a Click reply body; nothing
propagates to the transport layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import structlog
from pydantic import ValidationError

from modules.orders.constants import PaymentProvider, PaymentStatus
from modules.orders.exceptions import (
    AlreadyCompletedConflict,
    AmountMismatch,
    InvalidPaymentTransition,
    OrderNotFound,
    ProviderConflict,
)
from modules.payments.auth import constant_time_equals, log_verification_bypass
from modules.payments.click.constants import SYSTEM_ERROR_NOTE, ClickAction, ClickError
from modules.payments.click.dtos import ClickCallbackDTO
from modules.payments.click.responses import (
    click_response,
    complete_success,
    prepare_success,
)
from modules.payments.click.signature import verify_signature
from modules.payments.exceptions import PaymentRequestError
from modules.payments.utils import major_to_minor

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.services import PaymentTransitionService

logger = structlog.get_logger(__name__)

PROVIDER = PaymentProvider.CLICK


class ClickMerchantService:
    """Application service for Click SHOP-API callbacks.

    Verifies the MD5 signature and service id, then drives the shared
    order state machine through PREPARE (action 0) and COMPLETE (action 1).
    Every outcome is a Click reply dict served with HTTP 200.
    """

    def __init__(
        self,
        transitions: PaymentTransitionService,
        service_id: str,
        secret_key: str,
        test_mode: bool = False,
    ) -> None:
        self._transitions = transitions
        self._service_id = str(service_id or "")
        self._secret_key = secret_key or ""
        self._test_mode = test_mode

    def handle(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Answer one callback; unexpected errors become ``-9``."""
        try:
            return self._handle(payload)
        except Exception:
            logger.exception("click.unexpected_error")
            return click_response(ClickError.TRANSACTION_CANCELLED, SYSTEM_ERROR_NOTE)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _handle(self, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if payload is None:
            logger.warning("click.malformed_request")
            return click_response(ClickError.BAD_REQUEST)
        try:
            request = ClickCallbackDTO.model_validate(dict(payload))
        except ValidationError as exc:
            logger.warning("click.malformed_request", errors=exc.error_count())
            return click_response(ClickError.BAD_REQUEST)

        log = logger.bind(
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
            action=request.action,
        )

        if not self._service_id:
            log.error("click.service_id_not_configured")
            return click_response(ClickError.TRANSACTION_CANCELLED, SYSTEM_ERROR_NOTE)
        if not constant_time_equals(request.service_id, self._service_id):
            log.warning("click.invalid_service_id", service_id=request.service_id)
            return click_response(ClickError.BAD_REQUEST)

        if self._test_mode:
            log_verification_bypass(PROVIDER)
        elif not verify_signature(request, self._secret_key):
            log.warning("click.sign_check_failed")
            return click_response(ClickError.SIGN_CHECK_FAILED)

        if request.action == ClickAction.PREPARE:
            return self.prepare(request)
        if request.action == ClickAction.COMPLETE:
            return self.complete(request)

        log.warning("click.unknown_action")
        return click_response(ClickError.ACTION_NOT_FOUND)

    # ------------------------------------------------------------------
    # PREPARE
    # ------------------------------------------------------------------

    def prepare(self, request: ClickCallbackDTO) -> Dict[str, Any]:
        """Bind the order to the Click transaction and move it to processing.

        A repeat PREPARE for the same ``click_trans_id`` is answered as a
        success without writing.
        """
        log = logger.bind(
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
        )
        try:
            amount_minor = major_to_minor(request.amount)
        except PaymentRequestError:
            log.warning("click.prepare.invalid_amount", amount=request.amount)
            return click_response(ClickError.INVALID_AMOUNT)

        try:
            order = self._transitions.get_order(request.merchant_trans_id)
        except OrderNotFound:
            log.warning("click.prepare.order_not_found")
            return click_response(ClickError.ORDER_NOT_FOUND)

        if order.payment_status == PaymentStatus.COMPLETED:
            log.warning("click.prepare.already_paid")
            return click_response(ClickError.ALREADY_PAID)

        meta = order.meta_for(PROVIDER).model_copy(
            update={"prepared_at": self._transitions.now()}
        )
        try:
            result = self._transitions.begin(
                order, PROVIDER, request.click_trans_id, amount_minor, meta
            )
        except AmountMismatch as exc:
            log.warning(
                "click.prepare.amount_mismatch",
                expected=exc.expected,
                received=exc.received,
            )
            return click_response(ClickError.INVALID_AMOUNT)
        except AlreadyCompletedConflict:
            return click_response(ClickError.ALREADY_PAID)
        except ProviderConflict:
            log.warning("click.prepare.binding_conflict")
            return click_response(ClickError.TRANSACTION_NOT_FOUND)
        except InvalidPaymentTransition:
            log.warning("click.prepare.not_payable", status=order.payment_status)
            return click_response(ClickError.TRANSACTION_CANCELLED)

        log.info("click.prepare.succeeded", replayed=result.replayed)
        return prepare_success(request, str(order.id))

    # ------------------------------------------------------------------
    # COMPLETE
    # ------------------------------------------------------------------

    def complete(self, request: ClickCallbackDTO) -> Dict[str, Any]:
        """Complete a prepared order, or fail it when Click reports an error.

        ``merchant_prepare_id`` must echo the order id returned by PREPARE.
        Replays of a finished completion return the original success.
        """
        log = logger.bind(
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
        )
        try:
            order = self._transitions.get_order(request.merchant_trans_id)
        except OrderNotFound:
            log.warning("click.complete.order_not_found")
            return click_response(ClickError.ORDER_NOT_FOUND)

        if (request.merchant_prepare_id or "") != str(order.id):
            log.warning(
                "click.complete.prepare_id_mismatch",
                merchant_prepare_id=request.merchant_prepare_id,
            )
            return click_response(ClickError.TRANSACTION_NOT_FOUND)

        if order.payment_status == PaymentStatus.COMPLETED:
            if order.is_bound_to(PROVIDER, request.click_trans_id):
                log.info("click.complete.replayed")
                return complete_success(request, str(order.id))
            log.warning(
                "click.complete.already_paid",
                bound_transaction_id=order.provider_transaction_id,
            )
            return click_response(ClickError.ALREADY_PAID)

        if request.error < 0:
            return self._record_failure(order, request)

        try:
            amount_minor = major_to_minor(request.amount)
        except PaymentRequestError:
            log.warning("click.complete.invalid_amount", amount=request.amount)
            return click_response(ClickError.INVALID_AMOUNT)

        now = self._transitions.now()
        meta = order.meta_for(PROVIDER).model_copy(
            update={
                "completed_at": now,
                "paydoc_id": request.click_paydoc_id,
            }
        )
        try:
            result = self._transitions.complete(
                order,
                PROVIDER,
                request.click_trans_id,
                amount_minor,
                meta,
                notification_extra={"Click PayDoc ID": request.click_paydoc_id or ""},
            )
        except AmountMismatch as exc:
            log.warning(
                "click.complete.amount_mismatch",
                expected=exc.expected,
                received=exc.received,
            )
            return click_response(ClickError.INVALID_AMOUNT)
        except AlreadyCompletedConflict:
            log.warning("click.complete.already_paid")
            return click_response(ClickError.ALREADY_PAID)
        except ProviderConflict:
            log.warning("click.complete.binding_conflict")
            return click_response(ClickError.TRANSACTION_NOT_FOUND)
        except InvalidPaymentTransition:
            log.warning("click.complete.not_payable", status=order.payment_status)
            return click_response(ClickError.TRANSACTION_CANCELLED)

        log.info("click.complete.succeeded", replayed=result.replayed)
        return complete_success(request, str(order.id))

    def _record_failure(self, order: Order, request: ClickCallbackDTO) -> Dict[str, Any]:
        log = logger.bind(
            order_id=str(order.id),
            click_trans_id=request.click_trans_id,
            error_code=request.error,
        )
        meta = order.meta_for(PROVIDER).model_copy(
            update={
                "failed_at": self._transitions.now(),
                "error_code": request.error,
                "error_note": request.error_note,
            }
        )
        try:
            self._transitions.fail(order, PROVIDER, request.click_trans_id, meta)
        except ProviderConflict:
            log.warning("click.complete.binding_conflict")
            return click_response(ClickError.TRANSACTION_NOT_FOUND)
        except InvalidPaymentTransition:
            log.warning("click.complete.failure_not_recorded", status=order.payment_status)

        log.warning("click.complete.gateway_reported_failure")
        return click_response(
            ClickError.TRANSACTION_CANCELLED,
            f"Payment cancelled: {request.error_note}",
            click_trans_id=request.click_trans_id,
            merchant_trans_id=request.merchant_trans_id,
        )
