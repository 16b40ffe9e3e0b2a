import uuid

from django.db import models
from django.utils import timezone


class ReconciliationEntry(models.Model):
    """
    Durable work item for money that still has to move, or whose movement is unknown.

    Entries are created by the settlement flow and worked by the reconciliation
    sweep. At most one open entry exists per (settlement, kind).
    """

    KIND_PENDING_PAYOUT = "pending_payout"
    KIND_FAILED_TRANSFER = "failed_transfer"
    KIND_UNKNOWN_CHARGE = "unknown_charge"
    KIND_UNKNOWN_TRANSFER = "unknown_transfer"

    KIND_CHOICES = [
        (KIND_PENDING_PAYOUT, "Pending Payout"),
        (KIND_FAILED_TRANSFER, "Failed Transfer"),
        (KIND_UNKNOWN_CHARGE, "Unknown Charge Outcome"),
        (KIND_UNKNOWN_TRANSFER, "Unknown Transfer Outcome"),
    ]

    PAYOUT_KINDS = (KIND_PENDING_PAYOUT, KIND_FAILED_TRANSFER)

    STATUS_OPEN = "open"
    STATUS_RESOLVED = "resolved"
    STATUS_ABANDONED = "abandoned"

    STATUS_CHOICES = [
        (STATUS_OPEN, "Open"),
        (STATUS_RESOLVED, "Resolved"),
        (STATUS_ABANDONED, "Abandoned"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    settlement = models.ForeignKey(
        "payment_system.SettlementRecord", on_delete=models.PROTECT, related_name="reconciliation_entries"
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)

    amount = models.DecimalField(max_digits=12, decimal_places=3)
    currency = models.CharField(max_length=3, default="usd")

    # Sweep bookkeeping
    attempts = models.PositiveIntegerField(default=0)
    declined_payouts = models.PositiveIntegerField(default=0, help_text="Payouts the provider refused outright")
    next_attempt_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_error = models.TextField(blank=True)

    # Resolution
    resolution_ref = models.CharField(max_length=255, blank=True, help_text="Transfer/charge id or manual reference")
    resolved_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payment_reconciliation_entries"
        ordering = ["next_attempt_at", "created_at"]
        verbose_name_plural = "Reconciliation entries"
        constraints = [
            models.UniqueConstraint(
                fields=["settlement", "kind"],
                condition=models.Q(status="open"),
                name="unique_open_reconciliation_entry",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="reconciliation_due_idx"),
        ]

    def __str__(self):
        return f"{self.kind} {self.amount} {self.currency.upper()} [{self.status}]"

    @property
    def is_open(self) -> bool:
        return self.status == self.STATUS_OPEN

    @property
    def payout_idempotency_key(self) -> str:
        """
        Transfer key for a payout issued from this entry.

        Stable across sweeps until the provider refuses a payout, so a timed-out
        transfer is confirmed rather than sent twice. A refusal is stored by the
        provider under its key, so the next payout needs a new one.
        """
        settlement = self.settlement
        return f"settlement-{settlement.order_id}-{settlement.attempt_number}-payout-{self.pk}-{self.declined_payouts}"

    def record_declined_payout(self):
        self.declined_payouts += 1
        self.save(update_fields=["declined_payouts", "updated_at"])

    def mark_resolved(self, resolution_ref: str = "", notes: str = ""):
        self.status = self.STATUS_RESOLVED
        self.resolution_ref = resolution_ref
        self.resolved_at = timezone.now()
        if notes:
            self.notes = notes
        self.save()
