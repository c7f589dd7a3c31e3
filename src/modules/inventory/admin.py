from django.contrib import admin

from modules.inventory.models import Stock


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    list_display = (
        "product_id",
        "product_name",
        "color",
        "size",
        "quantity",
        "min_stock_level",
        "is_available",
    )
    list_filter = ("is_available",)
    search_fields = ("product_name", "product_id")
    readonly_fields = ("notes", "created_at", "updated_at")
