from django.contrib import admin

from modules.orders.models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = (
        "product_id",
        "name",
        "quantity",
        "price",
        "color",
        "size",
        "ikpu_code",
        "package_code",
        "vat_percent",
    )
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Read-mostly: payment fields change only through gateway callbacks."""

    list_display = (
        "id",
        "amount",
        "payment_provider",
        "payment_status",
        "provider_transaction_id",
        "created_at",
    )
    list_filter = ("payment_status", "payment_provider")
    search_fields = ("id", "provider_transaction_id", "customer_phone")
    readonly_fields = (
        "amount",
        "currency",
        "payment_provider",
        "payment_status",
        "provider_transaction_id",
        "meta",
        "version",
        "created_at",
        "updated_at",
    )
    inlines = [OrderItemInline]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
