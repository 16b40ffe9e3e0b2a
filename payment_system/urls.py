from django.urls import path

from .api.views import admin_views, settlement_views

app_name = "payment_system"

urlpatterns = [
    # Settlement
    path("settlements/", settlement_views.settle_order, name="settle_order"),
    path("settlements/<uuid:order_id>/", settlement_views.get_settlement, name="get_settlement"),
    # Admin endpoints
    path("admin/reconciliation/", admin_views.list_reconciliation_entries, name="admin_list_reconciliation"),
    path(
        "admin/reconciliation/<uuid:entry_id>/resolve/",
        admin_views.resolve_reconciliation_entry,
        name="admin_resolve_reconciliation",
    ),
    path("admin/reconciliation/sweep/", admin_views.run_reconciliation_sweep, name="admin_run_reconciliation_sweep"),
    path("admin/revenue/", admin_views.revenue_summary, name="admin_revenue_summary"),
]
