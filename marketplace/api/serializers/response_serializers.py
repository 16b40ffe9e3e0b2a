"""
Schema-only serializers: they describe response bodies for drf-spectacular
and never validate input.
"""

from rest_framework import serializers


class ErrorResponseSerializer(serializers.Serializer):
    """Body of every 4xx/5xx the marketplace and payment APIs return."""

    error = serializers.CharField(help_text="Machine-readable code, e.g. order_not_found or charge_failed")
    detail = serializers.CharField(help_text="Message safe to show the caller")


class OrderListResponseSerializer(serializers.Serializer):
    count = serializers.IntegerField(help_text="Orders matching the filters")
    page = serializers.IntegerField()
    page_size = serializers.IntegerField()
    num_pages = serializers.IntegerField()
    results = serializers.ListField(child=serializers.DictField(), help_text="OrderSerializer items")
