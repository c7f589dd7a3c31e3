from __future__ import annotations

from django.core.management.base import BaseCommand

from modules.inventory.models import Stock
from modules.orders.repositories import OrderDjangoRepository

DEMO_STOCK = [
    # (product_id, name, color, size, quantity)
    (101, "Cotton T-shirt", "black", "M", 40),
    (101, "Cotton T-shirt", "white", "L", 25),
    (102, "Canvas tote bag", "", "", 60),
    (103, "Wool beanie", "grey", "", 15),
]

DEMO_ITEMS = [
    {
        "product_id": "101-M-black",
        "name": "Cotton T-shirt",
        "quantity": 2,
        "price": 12_000_000,
        "color": "black",
        "size": "M",
        "ikpu_code": "06109001001000000",
        "package_code": "1501847",
        "vat_percent": 12,
    },
    {
        "product_id": "102-nosize-nocolor",
        "name": "Canvas tote bag",
        "quantity": 1,
        "price": 6_000_000,
    },
]


class Command(BaseCommand):
    help = "Seed demo stock and pending orders for gateway sandbox runs."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=1,
            help="Number of pending orders to create (default: 1).",
        )

    def handle(self, *args, **options):
        self.stdout.write("Seeding payment demo data...")
        stock_created = self._seed_stock()
        order_ids = self._seed_orders(max(0, options["orders"]))

        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: stock={stock_created}, orders={len(order_ids)}"
            )
        )
        for order_id in order_ids:
            self.stdout.write(f"  pending order {order_id}")

    def _seed_stock(self) -> int:
        created = 0
        for product_id, name, color, size, quantity in DEMO_STOCK:
            _, was_created = Stock.objects.get_or_create(
                product_id=product_id,
                color=color,
                size=size,
                defaults={"product_name": name, "quantity": quantity},
            )
            created += int(was_created)
        return created

    def _seed_orders(self, count: int) -> list[str]:
        repository = OrderDjangoRepository()
        amount = sum(item["price"] * item["quantity"] for item in DEMO_ITEMS)
        order_ids = []
        for i in range(count):
            order = repository.create(
                {
                    "amount": amount,
                    "customer_name": f"Demo Customer {i + 1}",
                    "customer_phone": "+998901234567",
                    "customer_address": "Tashkent, Amir Temur 1",
                    "items": DEMO_ITEMS,
                }
            )
            order_ids.append(str(order.id))
        return order_ids
