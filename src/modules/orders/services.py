"""Payment transition service (Use Cases).

The one place where ``Order.payment_status`` changes.  Every gateway
integration (Click, Uzum, Payme) decides *what* the gateway asked for and
then calls into this service, which enforces the shared rules:

- A transition into ``processing`` needs a matching amount and an order
  not bound to a different provider transaction.
- A transition into ``completed`` needs a matching amount; a replay with
  the same transaction id is an idempotent success, a different id on an
  already paid order is ``AlreadyCompletedConflict``.
- ``reverse`` cancels an unpaid order and refunds a paid one.
- Terminal states never regress; ``completed -> refunded`` is the only
  way out of ``completed``.

Each transition is a single conditional UPDATE (see
``IOrderRepository.compare_and_set``), so no outer transaction is opened.
When the write loses a race the order is reloaded once and the decision
re-evaluated: the winner's own replay becomes an idempotent success,
anything else a conflict.  Nothing is retried.

Notification and stock deduction run only after the first successful
completion; their failures are logged and swallowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Dict, Optional

import structlog
from django.utils import timezone

from modules.notifications.services import build_paid_order_message
from modules.orders.constants import (
    UZUM_CREATE_TIMEOUT,
    PaymentProvider,
    PaymentStatus,
    TransitionOutcome,
)
from modules.orders.exceptions import (
    AlreadyCompletedConflict,
    AmountMismatch,
    ConcurrentOrderUpdate,
    InvalidPaymentTransition,
    OrderNotFound,
    ProviderConflict,
)
from modules.orders.meta import UzumMeta, dump_meta

if TYPE_CHECKING:
    from modules.inventory.services import IStockDeductor
    from modules.notifications.services import INotifier
    from modules.orders.meta import ProviderMeta
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

REVERSED_STATES = {PaymentStatus.CANCELLED, PaymentStatus.REFUNDED}


@dataclass(frozen=True)
class TransitionResult:
    order: Order
    outcome: TransitionOutcome

    @property
    def replayed(self) -> bool:
        return self.outcome == TransitionOutcome.REPLAY


class PaymentTransitionService:
    """Application service for payment state changes.

    Receives its collaborators via constructor injection (DIP).  ``clock``
    returns the current aware datetime and is injectable so expiry can be
    tested at exact boundaries.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        notifier: INotifier,
        stock_deductor: IStockDeductor,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._order_repo = order_repository
        self._notifier = notifier
        self._stock_deductor = stock_deductor
        self._clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def find_by_transaction(self, provider: str, transaction_id: str) -> Optional[Order]:
        return self._order_repo.get_by_provider_transaction_id(
            provider, str(transaction_id)
        )

    def list_for_provider(self, provider: str, start: datetime, end: datetime):
        return self._order_repo.list_for_provider(provider, start, end)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def ensure_amount(order: Order, amount_minor: Optional[int]) -> None:
        """Raise ``AmountMismatch`` unless *amount_minor* equals the order amount."""
        if amount_minor is None or int(amount_minor) != order.amount:
            raise AmountMismatch(order.amount, amount_minor)

    @staticmethod
    def assert_bindable(order: Order, provider: str, transaction_id: str) -> None:
        """Raise ``ProviderConflict`` if another transaction already owns the order."""
        if order.is_bound and not order.is_bound_to(provider, str(transaction_id)):
            raise ProviderConflict(
                f"Order {order.id} is bound to {order.payment_provider} "
                f"transaction {order.provider_transaction_id}."
            )

    @staticmethod
    def reversal_status(order: Order) -> str:
        """Status a reverse would produce: refund after payment, else cancel."""
        if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
            return PaymentStatus.REFUNDED
        return PaymentStatus.CANCELLED

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def begin(
        self,
        order: Order,
        provider: str,
        transaction_id: str,
        amount_minor: Optional[int],
        meta: ProviderMeta,
    ) -> TransitionResult:
        """Bind *provider* / *transaction_id* and move to ``processing``.

        Raises:
            AlreadyCompletedConflict: the order is already paid.
            ProviderConflict: the order is bound to another transaction.
            InvalidPaymentTransition: the order is no longer payable.
            AmountMismatch: the amount differs from the order amount.
        """
        transaction_id = str(transaction_id)
        log = logger.bind(
            order_id=str(order.id), provider=provider, transaction_id=transaction_id
        )

        if order.payment_status == PaymentStatus.PROCESSING and order.is_bound_to(
            provider, transaction_id
        ):
            log.info("payment.begin_replayed")
            return TransitionResult(order, TransitionOutcome.REPLAY)
        if order.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyCompletedConflict(f"Order {order.id} is already paid.")

        self.assert_bindable(order, provider, transaction_id)
        if not order.can_transition_to(PaymentStatus.PROCESSING):
            log.warning("payment.invalid_transition", status=order.payment_status)
            raise InvalidPaymentTransition(
                f"Cannot start payment for order in status {order.payment_status}."
            )
        self.ensure_amount(order, amount_minor)

        try:
            self._order_repo.compare_and_set(
                order,
                {
                    "payment_provider": provider,
                    "provider_transaction_id": transaction_id,
                    "payment_status": PaymentStatus.PROCESSING,
                    "meta": dump_meta(meta),
                },
            )
        except ConcurrentOrderUpdate:
            fresh = self._reload(order)
            if fresh.payment_status == PaymentStatus.PROCESSING and fresh.is_bound_to(
                provider, transaction_id
            ):
                log.info("payment.begin_replayed", concurrent=True)
                return TransitionResult(fresh, TransitionOutcome.REPLAY)
            raise ProviderConflict(
                f"Order {order.id} changed while binding {transaction_id}."
            )

        log.info("payment.processing")
        return TransitionResult(order, TransitionOutcome.APPLIED)

    def complete(
        self,
        order: Order,
        provider: str,
        transaction_id: str,
        amount_minor: Optional[int],
        meta: ProviderMeta,
        notification_extra: Optional[Dict[str, str]] = None,
    ) -> TransitionResult:
        """Mark the order ``completed`` for *transaction_id*.

        A ``pending`` order with no bound transaction is bound and
        completed in the same write (gateways may confirm without a
        preceding prepare/create).  The amount is always re-checked.

        Raises:
            AlreadyCompletedConflict: paid by a different transaction.
            ProviderConflict: bound to a different provider/transaction.
            InvalidPaymentTransition: failed, cancelled or refunded.
            AmountMismatch: the amount differs from the order amount.
        """
        transaction_id = str(transaction_id)
        log = logger.bind(
            order_id=str(order.id), provider=provider, transaction_id=transaction_id
        )

        if order.payment_status == PaymentStatus.COMPLETED:
            if order.is_bound_to(provider, transaction_id):
                log.info("payment.complete_replayed")
                return TransitionResult(order, TransitionOutcome.REPLAY)
            log.warning(
                "payment.already_completed_conflict",
                bound_transaction_id=order.provider_transaction_id,
            )
            raise AlreadyCompletedConflict(
                f"Order {order.id} was paid by transaction "
                f"{order.provider_transaction_id}."
            )

        self.assert_bindable(order, provider, transaction_id)
        if not order.can_transition_to(PaymentStatus.COMPLETED):
            log.warning("payment.invalid_transition", status=order.payment_status)
            raise InvalidPaymentTransition(
                f"Cannot complete order in status {order.payment_status}."
            )
        self.ensure_amount(order, amount_minor)

        if order.payment_status == PaymentStatus.PENDING:
            log.info("payment.completing_without_begin")

        try:
            self._order_repo.compare_and_set(
                order,
                {
                    "payment_provider": provider,
                    "provider_transaction_id": transaction_id,
                    "payment_status": PaymentStatus.COMPLETED,
                    "meta": dump_meta(meta),
                },
            )
        except ConcurrentOrderUpdate:
            fresh = self._reload(order)
            if fresh.payment_status == PaymentStatus.COMPLETED:
                if fresh.is_bound_to(provider, transaction_id):
                    log.info("payment.complete_replayed", concurrent=True)
                    return TransitionResult(fresh, TransitionOutcome.REPLAY)
                raise AlreadyCompletedConflict(
                    f"Order {order.id} was paid by transaction "
                    f"{fresh.provider_transaction_id}."
                )
            raise ProviderConflict(
                f"Order {order.id} changed while completing {transaction_id}."
            )

        log.info("payment.completed", amount=order.amount)
        self._after_completion(order, provider, transaction_id, notification_extra)
        return TransitionResult(order, TransitionOutcome.APPLIED)

    def fail(
        self,
        order: Order,
        provider: str,
        transaction_id: str,
        meta: ProviderMeta,
    ) -> TransitionResult:
        """Record a gateway-reported payment failure.

        Raises:
            ProviderConflict: bound to a different provider/transaction.
            InvalidPaymentTransition: the order can no longer fail.
        """
        transaction_id = str(transaction_id)
        log = logger.bind(
            order_id=str(order.id), provider=provider, transaction_id=transaction_id
        )

        self.assert_bindable(order, provider, transaction_id)
        if order.payment_status == PaymentStatus.FAILED:
            log.info("payment.fail_replayed")
            return TransitionResult(order, TransitionOutcome.REPLAY)
        if not order.can_transition_to(PaymentStatus.FAILED):
            log.warning("payment.invalid_transition", status=order.payment_status)
            raise InvalidPaymentTransition(
                f"Cannot fail order in status {order.payment_status}."
            )

        try:
            self._order_repo.compare_and_set(
                order,
                {
                    "payment_provider": provider,
                    "provider_transaction_id": transaction_id,
                    "payment_status": PaymentStatus.FAILED,
                    "meta": dump_meta(meta),
                },
            )
        except ConcurrentOrderUpdate:
            fresh = self._reload(order)
            if fresh.payment_status == PaymentStatus.FAILED:
                return TransitionResult(fresh, TransitionOutcome.REPLAY)
            raise InvalidPaymentTransition(
                f"Order {order.id} changed to {fresh.payment_status}."
            )

        log.warning("payment.failed_by_gateway")
        return TransitionResult(order, TransitionOutcome.APPLIED)

    def reverse(self, order: Order, meta: ProviderMeta) -> TransitionResult:
        """Cancel an unpaid order or refund a paid one.

        Raises:
            InvalidPaymentTransition: the order cannot be reversed.
        """
        log = logger.bind(order_id=str(order.id), status=order.payment_status)

        if order.payment_status in REVERSED_STATES:
            log.info("payment.reverse_replayed")
            return TransitionResult(order, TransitionOutcome.REPLAY)

        target = self.reversal_status(order)
        if not order.can_transition_to(target):
            log.warning("payment.invalid_transition", target=target)
            raise InvalidPaymentTransition(
                f"Cannot reverse order in status {order.payment_status}."
            )

        try:
            self._order_repo.compare_and_set(
                order, {"payment_status": target, "meta": dump_meta(meta)}
            )
        except ConcurrentOrderUpdate:
            fresh = self._reload(order)
            if fresh.payment_status in REVERSED_STATES:
                return TransitionResult(fresh, TransitionOutcome.REPLAY)
            raise InvalidPaymentTransition(
                f"Order {order.id} changed to {fresh.payment_status}."
            )

        log.info("payment.reversed", new_status=target)
        return TransitionResult(order, TransitionOutcome.APPLIED)

    def expire_if_stale(
        self,
        order: Order,
        now: Optional[datetime] = None,
        timeout: timedelta = UZUM_CREATE_TIMEOUT,
    ) -> Order:
        """Fail an Uzum transaction left unconfirmed for longer than *timeout*.

        Called from the read-shaped ``status`` callback: Uzum expects a
        transaction still ``CREATED`` after 30 minutes to be reported (and
        stored) as ``FAILED``.  Returns the order in its current state.
        """
        now = now or self._clock()
        meta = order.payment_meta
        if (
            order.payment_status != PaymentStatus.PROCESSING
            or not isinstance(meta, UzumMeta)
            or meta.created_at is None
            or now - meta.created_at <= timeout
        ):
            return order

        expired = meta.model_copy(update={"expired": True, "failed_at": now})
        try:
            self._order_repo.compare_and_set(
                order,
                {"payment_status": PaymentStatus.FAILED, "meta": dump_meta(expired)},
            )
        except ConcurrentOrderUpdate:
            return self._reload(order)

        logger.warning(
            "payment.expired",
            order_id=str(order.id),
            transaction_id=order.provider_transaction_id,
            created_at=meta.created_at.isoformat(),
        )
        return order

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reload(self, order: Order) -> Order:
        return self.get_order(str(order.id))

    def _after_completion(
        self,
        order: Order,
        provider: str,
        transaction_id: str,
        extra: Optional[Dict[str, str]],
    ) -> None:
        log = logger.bind(order_id=str(order.id))
        try:
            message = build_paid_order_message(
                order, PaymentProvider(provider).label, transaction_id, extra
            )
            self._notifier.notify(message)
        except Exception:
            log.exception("payment.notification_failed")

        try:
            self._stock_deductor.deduct_for_order(order)
        except Exception:
            log.exception("payment.stock_deduction_failed")
