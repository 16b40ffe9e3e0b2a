from django.contrib import admin

from .models import Order, OrderStatusChange, SellerAccount


class OrderStatusChangeInline(admin.TabularInline):
    model = OrderStatusChange
    extra = 0
    can_delete = False
    fields = ("from_status", "to_status", "reason", "created_at")
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("short_id", "buyer", "seller", "status", "total_amount", "currency", "created_at")
    list_filter = ("status", "currency", "created_at")
    search_fields = ("id", "buyer__username", "buyer__email", "seller__username", "seller__email")
    # Status only changes through OrderService so it stays audited
    readonly_fields = ("id", "status", "created_at", "updated_at")
    inlines = [OrderStatusChangeInline]

    fieldsets = (
        (None, {"fields": ("id", "buyer", "seller", "status")}),
        ("Payment", {"fields": ("total_amount", "currency", "payment_method")}),
        ("Shipping", {"fields": ("shipping_address",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    def short_id(self, obj):
        return str(obj.id)[:8]

    short_id.short_description = "ID"

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SellerAccount)
class SellerAccountAdmin(admin.ModelAdmin):
    list_display = ("seller", "payout_destination", "is_verified", "updated_at")
    list_filter = ("is_verified",)
    search_fields = ("seller__username", "seller__email", "payout_destination")
    readonly_fields = ("created_at", "updated_at")
