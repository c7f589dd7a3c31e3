import uuid6
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Stock",
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
                ("product_id", models.PositiveIntegerField()),
                ("product_name", models.CharField(max_length=255)),
                ("color", models.CharField(blank=True, default="", max_length=64)),
                ("size", models.CharField(blank=True, default="", max_length=32)),
                ("quantity", models.PositiveIntegerField(default=0)),
                ("min_stock_level", models.PositiveIntegerField(default=10)),
                ("is_available", models.BooleanField(default=True)),
                ("notes", models.TextField(blank=True, default="")),
            ],
            options={
                "db_table": "stock",
                "ordering": ["product_id", "color", "size"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("product_id", "color", "size"),
                        name="stock_unique_variant",
                    ),
                ],
            },
        ),
    ]
