from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api.views import prometheus_metrics
from .ordering.api.views.order_views import OrderViewSet
from .sellers.api.views import seller_views

router = DefaultRouter()
router.register(r"orders", OrderViewSet, basename="order")

app_name = "marketplace"

urlpatterns = [
    path("", include(router.urls)),
    # Seller accounts
    path("sellers/", seller_views.enroll_seller, name="seller-enroll"),
    path("sellers/me/", seller_views.my_seller_account, name="seller-me"),
    path("sellers/payout-destination/", seller_views.register_payout_destination, name="seller-payout-destination"),
    path("sellers/onboarding/", seller_views.onboard_connected_account, name="seller-onboarding"),
    # Prometheus metrics endpoint
    path("metrics/", prometheus_metrics.prometheus_metrics, name="marketplace-metrics"),
]
