"""Integration tests for OrderDjangoRepository.

Covers:
- Create: order + items persisted atomically.
- Lookups: by id (tolerating malformed ids) and by provider transaction.
- compare_and_set: version bump, stale version / status rejection,
  unique provider transaction binding.
- list_for_provider: bound orders in a creation window.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from modules.orders.constants import PaymentStatus
from modules.orders.exceptions import ConcurrentOrderUpdate, ProviderConflict
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.integration


@pytest.fixture()
def repo():
    return OrderDjangoRepository()


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreate:
    def test_persists_order_and_items(self, order):
        stored = Order.objects.get(pk=order.pk)
        assert stored.amount == 5_000_000
        assert stored.currency == "UZS"
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.version == 0
        assert stored.meta == {}
        assert stored.items.count() == 2

    def test_item_snapshot(self, order):
        item = OrderItem.objects.get(order=order, product_id="101-M-black")
        assert item.name == "Cotton T-shirt"
        assert (item.quantity, item.price) == (2, 2_000_000)
        assert item.ikpu_code == "06109001001000000"
        assert item.vat_percent == 12

    def test_failure_rolls_back_aggregate(self, repo):
        with patch.object(OrderItem.objects, "create", side_effect=RuntimeError):
            with pytest.raises(RuntimeError):
                repo.create(
                    {
                        "amount": 100,
                        "items": [{"product_id": "1", "name": "x", "price": 100}],
                    }
                )
        assert Order.objects.count() == 0


class TestLookups:
    def test_get_by_id(self, repo, order):
        assert repo.get_by_id(str(order.id)) == order

    @pytest.mark.parametrize("bad_id", ["not-a-uuid", "", "123"])
    def test_get_by_malformed_id_returns_none(self, repo, bad_id):
        assert repo.get_by_id(bad_id) is None

    def test_get_by_provider_transaction_id(self, repo, order):
        repo.compare_and_set(
            order, {"payment_provider": "uzum", "provider_transaction_id": "u-1"}
        )
        assert repo.get_by_provider_transaction_id("uzum", "u-1") == order
        assert repo.get_by_provider_transaction_id("payme", "u-1") is None


# ---------------------------------------------------------------------------
# compare_and_set
# ---------------------------------------------------------------------------


class TestCompareAndSet:
    def test_applies_changes_and_bumps_version(self, repo, order):
        repo.compare_and_set(
            order,
            {
                "payment_status": PaymentStatus.PROCESSING,
                "payment_provider": "click",
                "provider_transaction_id": "c-1",
            },
        )
        assert order.version == 1
        assert order.payment_status == PaymentStatus.PROCESSING

        stored = Order.objects.get(pk=order.pk)
        assert stored.version == 1
        assert stored.payment_status == PaymentStatus.PROCESSING
        assert stored.provider_transaction_id == "c-1"

    def test_stale_version_is_rejected(self, repo, order):
        stale = Order.objects.get(pk=order.pk)
        repo.compare_and_set(order, {"payment_status": PaymentStatus.PROCESSING})

        with pytest.raises(ConcurrentOrderUpdate):
            repo.compare_and_set(stale, {"payment_status": PaymentStatus.CANCELLED})

        assert Order.objects.get(pk=order.pk).payment_status == PaymentStatus.PROCESSING
        assert stale.payment_status == PaymentStatus.PENDING

    def test_changed_status_is_rejected(self, repo, order):
        Order.objects.filter(pk=order.pk).update(payment_status=PaymentStatus.FAILED)
        with pytest.raises(ConcurrentOrderUpdate):
            repo.compare_and_set(order, {"payment_status": PaymentStatus.COMPLETED})

    def test_transaction_id_unique_per_provider(self, repo, make_order):
        first, second = make_order(), make_order()
        repo.compare_and_set(
            first, {"payment_provider": "payme", "provider_transaction_id": "p-1"}
        )
        with pytest.raises(ProviderConflict):
            repo.compare_and_set(
                second, {"payment_provider": "payme", "provider_transaction_id": "p-1"}
            )
        assert Order.objects.get(pk=second.pk).provider_transaction_id is None
        assert second.version == 0

    def test_same_transaction_id_allowed_across_providers(self, repo, make_order):
        first, second = make_order(), make_order()
        repo.compare_and_set(
            first, {"payment_provider": "payme", "provider_transaction_id": "42"}
        )
        repo.compare_and_set(
            second, {"payment_provider": "click", "provider_transaction_id": "42"}
        )
        assert second.version == 1

    def test_meta_round_trips_as_json(self, repo, order):
        repo.compare_and_set(order, {"meta": {"provider": "payme", "create_time": 5}})
        assert Order.objects.get(pk=order.pk).meta["create_time"] == 5


class TestListForProvider:
    def test_returns_bound_orders_in_window(self, repo, make_order):
        bound, unbound, other = make_order(), make_order(), make_order()
        repo.compare_and_set(
            bound, {"payment_provider": "payme", "provider_transaction_id": "p-1"}
        )
        Order.objects.filter(pk=unbound.pk).update(payment_provider="payme")
        repo.compare_and_set(
            other, {"payment_provider": "click", "provider_transaction_id": "c-1"}
        )

        now = timezone.now()
        result = repo.list_for_provider(
            "payme", now - timedelta(hours=1), now + timedelta(hours=1)
        )
        assert result == [bound]

    def test_window_excludes_older_orders(self, repo, order):
        repo.compare_and_set(
            order, {"payment_provider": "payme", "provider_transaction_id": "p-1"}
        )
        later = timezone.now() + timedelta(minutes=5)
        assert repo.list_for_provider("payme", later, later + timedelta(hours=1)) == []
