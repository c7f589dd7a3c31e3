"""Integration tests for the ``seed_payment_demo`` management command."""

from io import StringIO

import pytest
from django.core.management import call_command

from modules.inventory.models import Stock
from modules.orders.constants import PaymentStatus
from modules.orders.models import Order

pytestmark = pytest.mark.integration


def _seed(*args) -> str:
    out = StringIO()
    call_command("seed_payment_demo", *args, stdout=out)
    return out.getvalue()


class TestSeedPaymentDemo:
    def test_creates_stock_and_pending_orders(self):
        output = _seed("--orders", "2")

        assert Stock.objects.count() == 4
        orders = Order.objects.all()
        assert orders.count() == 2
        for order in orders:
            assert order.payment_status == PaymentStatus.PENDING
            assert order.amount == 30_000_000
            assert order.items.count() == 2
            assert str(order.id) in output
        assert "Seed completed: stock=4, orders=2" in output

    def test_stock_is_seeded_once(self):
        _seed("--orders", "0")
        output = _seed("--orders", "1")

        assert Stock.objects.count() == 4
        assert Order.objects.count() == 1
        assert "stock=0, orders=1" in output

    def test_default_creates_one_order(self):
        _seed()
        assert Order.objects.count() == 1
