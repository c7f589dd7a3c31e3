import django.core.validators
import django.db.models.deletion
import uuid6
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Order total in minor units (tiyin)."
                    ),
                ),
                ("currency", models.CharField(default="UZS", max_length=3)),
                (
                    "payment_provider",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("payme", "Payme"),
                            ("click", "Click"),
                            ("uzum", "Uzum Bank"),
                        ],
                        max_length=10,
                        null=True,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "provider_transaction_id",
                    models.CharField(
                        blank=True, db_index=True, max_length=64, null=True
                    ),
                ),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "customer_name",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "customer_phone",
                    models.CharField(blank=True, default="", max_length=32),
                ),
                (
                    "customer_address",
                    models.CharField(blank=True, default="", max_length=500),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment_status"], name="orders_pay_status_idx"
                    ),
                    models.Index(
                        fields=["payment_provider", "-created_at"],
                        name="orders_provider_created_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(provider_transaction_id__isnull=False),
                        fields=("payment_provider", "provider_transaction_id"),
                        name="orders_unique_provider_transaction",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product_id", models.CharField(max_length=64)),
                ("name", models.CharField(max_length=255)),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("price", models.PositiveBigIntegerField()),
                ("color", models.CharField(blank=True, default="", max_length=64)),
                ("size", models.CharField(blank=True, max_length=32, null=True)),
                (
                    "ikpu_code",
                    models.CharField(blank=True, default="", max_length=32),
                ),
                (
                    "package_code",
                    models.CharField(blank=True, default="", max_length=32),
                ),
                (
                    "vat_percent",
                    models.PositiveSmallIntegerField(blank=True, null=True),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "order_items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(quantity__gte=1),
                        name="order_items_quantity_positive",
                    ),
                ],
            },
        ),
    ]
