import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Order(models.Model):
    """A buyer's purchase from a single seller. Orders are never deleted, only status-transitioned."""

    STATUS_CHOICES = [
        ("pending", "Pending"),  # Created by order intake, awaiting settlement
        ("paid", "Paid"),  # Buyer charged, seller payout not yet done
        ("payout_scheduled", "Payout Scheduled"),  # Payout waiting on reconciliation
        ("settled", "Settled"),  # Buyer charged and seller paid
        ("failed", "Failed"),  # Charge failed; buyer may retry
    ]

    # Allowed status transitions; same-status updates are treated as no-ops
    ALLOWED_TRANSITIONS = {
        "pending": {"paid", "failed"},
        "failed": {"pending", "paid", "failed"},
        "paid": {"payout_scheduled", "settled"},
        "payout_scheduled": {"settled"},
        "settled": set(),
    }

    SETTLEABLE_STATUSES = ("pending", "failed")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="sold_orders")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending", db_index=True)

    # Pricing - the full total (shipping and tax included) is the commissionable amount
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))]
    )
    currency = models.CharField(max_length=3, default="usd")

    # Intake details
    shipping_address = models.JSONField()
    payment_method = models.CharField(max_length=255, help_text="Opaque payment method reference from intake")

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        app_label = "marketplace"
        indexes = [
            models.Index(fields=["buyer", "-created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["seller", "-created_at"], name="order_seller_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total_amount__gt=0), name="order_total_positive"),
        ]

    def __str__(self):
        return f"Order {str(self.id)[:8]} [{self.status}]"

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    @property
    def is_settleable(self) -> bool:
        return self.status in self.SETTLEABLE_STATUSES


class OrderStatusChange(models.Model):
    """Append-only audit trail of order status transitions."""

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="status_changes")
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20)
    reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        app_label = "marketplace"

    def __str__(self):
        return f"{str(self.order_id)[:8]}: {self.from_status or '-'} -> {self.to_status}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Order status changes are append-only")
        super().save(*args, **kwargs)
