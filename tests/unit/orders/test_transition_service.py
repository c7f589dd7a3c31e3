"""Unit tests for PaymentTransitionService.

Covers:
- begin: bind + processing, replay, conflicts, amount guard.
- complete: direct completion from pending, replay, double-pay conflict.
- Side effects run once and never break the transition.
- Lost compare-and-set races: reload once, replay or conflict.
- fail / reverse transitions.
- Uzum lazy expiry at the timeout boundary.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from modules.orders.constants import PaymentStatus, TransitionOutcome
from modules.orders.exceptions import (
    AlreadyCompletedConflict,
    AmountMismatch,
    ConcurrentOrderUpdate,
    InvalidPaymentTransition,
    OrderNotFound,
    ProviderConflict,
)
from modules.orders.meta import ClickMeta, PaymeMeta, UzumMeta, dump_meta
from modules.orders.models import Order
from modules.orders.services import PaymentTransitionService

pytestmark = pytest.mark.unit

AMOUNT = 5_000_000
NOW = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _apply(order, changes):
    for field, value in changes.items():
        setattr(order, field, value)
    order.version += 1
    return order


@pytest.fixture()
def repo():
    mock = MagicMock()
    mock.compare_and_set.side_effect = _apply
    return mock


@pytest.fixture()
def notifier():
    return MagicMock()


@pytest.fixture()
def stock():
    return MagicMock()


@pytest.fixture()
def service(repo, notifier, stock):
    return PaymentTransitionService(
        order_repository=repo,
        notifier=notifier,
        stock_deductor=stock,
        clock=lambda: NOW,
    )


def _order(**kwargs) -> Order:
    kwargs.setdefault("amount", AMOUNT)
    return Order(**kwargs)


def _bound(status, provider="click", transaction_id="tx-1", **kwargs) -> Order:
    return _order(
        payment_status=status,
        payment_provider=provider,
        provider_transaction_id=transaction_id,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Queries and guards
# ---------------------------------------------------------------------------


class TestQueries:
    def test_get_order_raises_when_missing(self, service, repo):
        repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            service.get_order("nope")

    def test_find_by_transaction_passes_string_id(self, service, repo):
        service.find_by_transaction("click", 123)
        repo.get_by_provider_transaction_id.assert_called_once_with("click", "123")

    def test_now_uses_injected_clock(self, service):
        assert service.now() == NOW

    @pytest.mark.parametrize("amount", [None, AMOUNT - 1, AMOUNT + 1])
    def test_ensure_amount_rejects_mismatch(self, amount):
        with pytest.raises(AmountMismatch) as exc_info:
            PaymentTransitionService.ensure_amount(_order(), amount)
        assert exc_info.value.expected == AMOUNT
        assert exc_info.value.received == amount

    def test_reversal_status(self):
        reversal = PaymentTransitionService.reversal_status
        assert reversal(_order(payment_status=PaymentStatus.COMPLETED)) == "refunded"
        assert reversal(_order(payment_status=PaymentStatus.PROCESSING)) == "cancelled"


# ---------------------------------------------------------------------------
# begin
# ---------------------------------------------------------------------------


class TestBegin:
    def test_binds_and_moves_to_processing(self, service, repo):
        order = _order()
        result = service.begin(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.outcome == TransitionOutcome.APPLIED
        assert order.payment_status == PaymentStatus.PROCESSING
        assert order.is_bound_to("click", "tx-1")
        assert order.version == 1
        changes = repo.compare_and_set.call_args.args[1]
        assert changes["meta"] == dump_meta(ClickMeta())

    def test_same_transaction_replays(self, service, repo):
        order = _bound(PaymentStatus.PROCESSING)
        result = service.begin(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.replayed
        repo.compare_and_set.assert_not_called()

    def test_completed_order_conflicts(self, service):
        order = _bound(PaymentStatus.COMPLETED)
        with pytest.raises(AlreadyCompletedConflict):
            service.begin(order, "click", "tx-1", AMOUNT, ClickMeta())

    def test_other_transaction_conflicts(self, service, repo):
        order = _bound(PaymentStatus.PROCESSING, provider="payme", transaction_id="p")
        with pytest.raises(ProviderConflict):
            service.begin(order, "click", "tx-1", AMOUNT, ClickMeta())
        repo.compare_and_set.assert_not_called()

    @pytest.mark.parametrize(
        "status", [PaymentStatus.CANCELLED, PaymentStatus.REFUNDED]
    )
    def test_closed_order_is_not_payable(self, service, status):
        with pytest.raises(InvalidPaymentTransition):
            service.begin(
                _order(payment_status=status), "click", "t", AMOUNT, ClickMeta()
            )

    def test_amount_mismatch_leaves_order_untouched(self, service, repo):
        order = _order()
        with pytest.raises(AmountMismatch):
            service.begin(order, "click", "tx-1", AMOUNT - 100, ClickMeta())
        assert order.payment_status == PaymentStatus.PENDING
        repo.compare_and_set.assert_not_called()

    def test_lost_race_to_same_transaction_replays(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(PaymentStatus.PROCESSING)

        result = service.begin(_order(), "click", "tx-1", AMOUNT, ClickMeta())

        assert result.outcome == TransitionOutcome.REPLAY
        assert result.order is repo.get_by_id.return_value

    def test_lost_race_to_other_transaction_conflicts(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(
            PaymentStatus.PROCESSING, provider="uzum", transaction_id="u-1"
        )
        with pytest.raises(ProviderConflict):
            service.begin(_order(), "click", "tx-1", AMOUNT, ClickMeta())
        assert repo.compare_and_set.call_count == 1


# ---------------------------------------------------------------------------
# complete
# ---------------------------------------------------------------------------


class TestComplete:
    def test_completes_processing_order(self, service, notifier, stock):
        order = _bound(PaymentStatus.PROCESSING)
        result = service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.outcome == TransitionOutcome.APPLIED
        assert order.payment_status == PaymentStatus.COMPLETED
        notifier.notify.assert_called_once()
        stock.deduct_for_order.assert_called_once_with(order)

    def test_pending_order_completes_in_one_write(self, service, repo):
        order = _order()
        service.complete(order, "uzum", "u-9", AMOUNT, UzumMeta(trans_id="u-9"))

        assert repo.compare_and_set.call_count == 1
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.is_bound_to("uzum", "u-9")

    def test_notification_mentions_transaction(self, service, notifier):
        order = _bound(PaymentStatus.PROCESSING)
        service.complete(
            order,
            "click",
            "tx-1",
            AMOUNT,
            ClickMeta(),
            notification_extra={"Click PayDoc ID": "pd-5"},
        )
        message = notifier.notify.call_args.args[0]
        assert "<b>Provider:</b> Click" in message
        assert "tx-1" in message
        assert "pd-5" in message

    def test_replay_has_no_side_effects(self, service, repo, notifier, stock):
        order = _bound(PaymentStatus.COMPLETED)
        result = service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.replayed
        repo.compare_and_set.assert_not_called()
        notifier.notify.assert_not_called()
        stock.deduct_for_order.assert_not_called()

    def test_paid_by_other_transaction_conflicts(self, service):
        order = _bound(PaymentStatus.COMPLETED, transaction_id="tx-0")
        with pytest.raises(AlreadyCompletedConflict):
            service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

    def test_bound_to_other_provider_conflicts(self, service):
        order = _bound(PaymentStatus.PROCESSING, provider="payme", transaction_id="p")
        with pytest.raises(ProviderConflict):
            service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED],
    )
    def test_closed_order_cannot_complete(self, service, status):
        order = _bound(status)
        with pytest.raises(InvalidPaymentTransition):
            service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

    def test_amount_is_rechecked(self, service):
        order = _bound(PaymentStatus.PROCESSING)
        with pytest.raises(AmountMismatch):
            service.complete(order, "click", "tx-1", AMOUNT * 2, ClickMeta())

    def test_lost_race_to_same_transaction_replays_without_side_effects(
        self, service, repo, notifier, stock
    ):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(PaymentStatus.COMPLETED)

        result = service.complete(
            _bound(PaymentStatus.PROCESSING), "click", "tx-1", AMOUNT, ClickMeta()
        )

        assert result.replayed
        notifier.notify.assert_not_called()
        stock.deduct_for_order.assert_not_called()

    def test_lost_race_to_other_payment_conflicts(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(
            PaymentStatus.COMPLETED, provider="payme", transaction_id="p-1"
        )
        with pytest.raises(AlreadyCompletedConflict):
            service.complete(_order(), "click", "tx-1", AMOUNT, ClickMeta())

    def test_lost_race_to_cancel_conflicts(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(PaymentStatus.CANCELLED)
        with pytest.raises(ProviderConflict):
            service.complete(
                _bound(PaymentStatus.PROCESSING), "click", "tx-1", AMOUNT, ClickMeta()
            )


class TestSideEffectFailures:
    def test_notification_failure_is_swallowed(self, service, notifier, stock):
        notifier.notify.side_effect = RuntimeError("telegram down")
        order = _bound(PaymentStatus.PROCESSING)

        result = service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.outcome == TransitionOutcome.APPLIED
        assert order.payment_status == PaymentStatus.COMPLETED
        stock.deduct_for_order.assert_called_once_with(order)

    def test_stock_failure_is_swallowed(self, service, stock):
        stock.deduct_for_order.side_effect = RuntimeError("db hiccup")
        order = _bound(PaymentStatus.PROCESSING)

        result = service.complete(order, "click", "tx-1", AMOUNT, ClickMeta())

        assert result.outcome == TransitionOutcome.APPLIED


# ---------------------------------------------------------------------------
# fail / reverse
# ---------------------------------------------------------------------------


class TestFail:
    def test_processing_order_fails(self, service):
        order = _bound(PaymentStatus.PROCESSING)
        result = service.fail(order, "click", "tx-1", ClickMeta(error_code=-5017))
        assert result.outcome == TransitionOutcome.APPLIED
        assert order.payment_status == PaymentStatus.FAILED
        assert order.meta["error_code"] == -5017

    def test_failed_order_replays(self, service, repo):
        order = _bound(PaymentStatus.FAILED)
        result = service.fail(order, "click", "tx-1", ClickMeta())
        assert result.replayed
        repo.compare_and_set.assert_not_called()

    def test_completed_order_cannot_fail(self, service):
        with pytest.raises(InvalidPaymentTransition):
            service.fail(_bound(PaymentStatus.COMPLETED), "click", "tx-1", ClickMeta())

    def test_other_transaction_conflicts(self, service):
        with pytest.raises(ProviderConflict):
            service.fail(_bound(PaymentStatus.PROCESSING), "click", "tx-2", ClickMeta())


class TestReverse:
    def test_unpaid_order_is_cancelled(self, service):
        order = _bound(PaymentStatus.PROCESSING, provider="payme")
        service.reverse(order, PaymeMeta(cancel_reason=3))
        assert order.payment_status == PaymentStatus.CANCELLED

    def test_paid_order_is_refunded(self, service):
        order = _bound(PaymentStatus.COMPLETED, provider="payme")
        result = service.reverse(order, PaymeMeta(cancel_reason=5))
        assert result.outcome == TransitionOutcome.APPLIED
        assert order.payment_status == PaymentStatus.REFUNDED

    def test_failed_order_is_cancelled(self, service):
        order = _bound(PaymentStatus.FAILED, provider="uzum")
        service.reverse(order, UzumMeta())
        assert order.payment_status == PaymentStatus.CANCELLED

    @pytest.mark.parametrize(
        "status", [PaymentStatus.CANCELLED, PaymentStatus.REFUNDED]
    )
    def test_reversed_order_replays(self, service, repo, status):
        result = service.reverse(_bound(status), ClickMeta())
        assert result.replayed
        repo.compare_and_set.assert_not_called()

    def test_lost_race_to_reverse_replays(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(PaymentStatus.CANCELLED)
        result = service.reverse(_bound(PaymentStatus.PROCESSING), ClickMeta())
        assert result.replayed

    def test_lost_race_to_completion_is_invalid(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        repo.get_by_id.return_value = _bound(PaymentStatus.COMPLETED)
        with pytest.raises(InvalidPaymentTransition):
            service.reverse(_bound(PaymentStatus.PROCESSING), ClickMeta())


# ---------------------------------------------------------------------------
# Uzum lazy expiry
# ---------------------------------------------------------------------------


class TestExpireIfStale:
    def _created(self, minutes_ago: float) -> Order:
        meta = UzumMeta(trans_id="u-1", created_at=NOW - timedelta(minutes=minutes_ago))
        return _bound(
            PaymentStatus.PROCESSING,
            provider="uzum",
            transaction_id="u-1",
            meta=dump_meta(meta),
        )

    def test_stale_transaction_fails(self, service):
        order = service.expire_if_stale(self._created(31))
        assert order.payment_status == PaymentStatus.FAILED
        meta = order.payment_meta
        assert meta.expired is True
        assert meta.failed_at == NOW

    def test_exact_timeout_is_not_stale(self, service, repo):
        order = service.expire_if_stale(self._created(30))
        assert order.payment_status == PaymentStatus.PROCESSING
        repo.compare_and_set.assert_not_called()

    def test_custom_timeout(self, service):
        order = service.expire_if_stale(self._created(6), timeout=timedelta(minutes=5))
        assert order.payment_status == PaymentStatus.FAILED

    def test_explicit_now_overrides_clock(self, service):
        order = self._created(0)
        later = NOW + timedelta(hours=1)
        assert service.expire_if_stale(order, now=later).payment_status == "failed"

    def test_confirmed_order_never_expires(self, service, repo):
        order = self._created(120)
        order.payment_status = PaymentStatus.COMPLETED
        service.expire_if_stale(order)
        repo.compare_and_set.assert_not_called()

    def test_non_uzum_meta_is_ignored(self, service, repo):
        order = _bound(PaymentStatus.PROCESSING, meta=dump_meta(ClickMeta()))
        service.expire_if_stale(order)
        repo.compare_and_set.assert_not_called()

    def test_lost_race_returns_fresh_order(self, service, repo):
        repo.compare_and_set.side_effect = ConcurrentOrderUpdate("stale")
        fresh = _bound(PaymentStatus.COMPLETED, provider="uzum", transaction_id="u-1")
        repo.get_by_id.return_value = fresh
        assert service.expire_if_stale(self._created(45)) is fresh
