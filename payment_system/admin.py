from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from utils.logging_utils import mask_value

from .models import ReconciliationEntry, SettlementRecord


class ReconciliationEntryInline(admin.TabularInline):
    model = ReconciliationEntry
    extra = 0
    can_delete = False
    fields = ("kind", "status", "amount", "attempts", "next_attempt_at", "resolution_ref")
    readonly_fields = fields


@admin.register(SettlementRecord)
class SettlementRecordAdmin(admin.ModelAdmin):
    """Read-only view of the settlement ledger"""

    list_display = [
        "id_short",
        "order_link",
        "attempt_number",
        "outcome_badge",
        "total_display",
        "platform_commission",
        "seller_payout",
        "transfer_attempts",
        "created_at",
    ]

    list_filter = ["outcome", "currency", "created_at"]

    search_fields = ["order__id", "idempotency_key", "charge_ref", "transfer_ref", "payout_destination"]

    fieldsets = (
        ("Attempt", {"fields": ("id", "order", "attempt_number", "idempotency_key", "outcome")}),
        (
            "Commission Split",
            {"fields": ("currency", "total_amount", "commission_rate", "platform_commission", "seller_payout")},
        ),
        ("Provider", {"fields": ("masked_payment_method", "payout_destination", "charge_ref", "transfer_ref")}),
        ("Failure", {"fields": ("transfer_attempts", "failure_code", "failure_message")}),
        ("Timestamps", {"fields": ("created_at", "updated_at", "completed_at")}),
    )

    inlines = [ReconciliationEntryInline]

    # The ledger is written by SettlementService only
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def id_short(self, obj):
        return str(obj.id)[:8] + "..."

    id_short.short_description = "ID"

    def order_link(self, obj):
        url = reverse("admin:marketplace_order_change", args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, str(obj.order_id)[:8])

    order_link.short_description = "Order"

    def masked_payment_method(self, obj):
        return mask_value(obj.payment_method_ref)

    masked_payment_method.short_description = "Payment method"

    def outcome_badge(self, obj):
        colors = {
            SettlementRecord.OUTCOME_COMPLETED: "green",
            SettlementRecord.OUTCOME_CHARGE_FAILED: "gray",
            SettlementRecord.OUTCOME_TRANSFER_PENDING: "orange",
            SettlementRecord.OUTCOME_TRANSFER_FAILED: "red",
            SettlementRecord.OUTCOME_CHARGE_UNKNOWN: "purple",
            SettlementRecord.OUTCOME_TRANSFER_UNKNOWN: "purple",
        }
        color = colors.get(obj.outcome, "black")
        return format_html('<span style="color: {}; font-weight: bold;">{}</span>', color, obj.get_outcome_display())

    outcome_badge.short_description = "Outcome"

    def total_display(self, obj):
        return f"{obj.total_amount:.2f} {obj.currency.upper()}"

    total_display.short_description = "Total"


@admin.register(ReconciliationEntry)
class ReconciliationEntryAdmin(admin.ModelAdmin):
    list_display = ["id_short", "kind", "status", "amount", "currency", "attempts", "next_attempt_at", "resolved_at"]
    list_filter = ["kind", "status"]
    search_fields = ["settlement__order__id", "resolution_ref", "notes"]
    readonly_fields = [
        "id",
        "settlement",
        "kind",
        "amount",
        "currency",
        "attempts",
        "last_error",
        "resolved_at",
        "created_at",
        "updated_at",
    ]

    def id_short(self, obj):
        return str(obj.id)[:8] + "..."

    id_short.short_description = "ID"
