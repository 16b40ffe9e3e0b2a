import uuid
from decimal import Decimal

from django.db import models

from payment_system.domain.exceptions import SettlementStateError


class SettlementRecord(models.Model):
    """
    One attempt to settle one order: charge the buyer for the full total, then
    transfer the seller's share.

    The record is written (outcome ``processing``) before any money moves and
    is immutable once it reaches a terminal outcome. An order may have several
    attempts when earlier charges failed; ``(order, attempt_number)`` is unique.
    """

    OUTCOME_PROCESSING = "processing"
    OUTCOME_CHARGE_UNKNOWN = "charge_outcome_unknown"
    OUTCOME_CHARGED = "charged"
    OUTCOME_TRANSFER_UNKNOWN = "transfer_outcome_unknown"
    OUTCOME_CHARGE_FAILED = "charge_failed"
    OUTCOME_TRANSFER_PENDING = "charge_succeeded_transfer_pending"
    OUTCOME_TRANSFER_FAILED = "charge_succeeded_transfer_failed"
    OUTCOME_COMPLETED = "completed"

    OUTCOME_CHOICES = [
        (OUTCOME_PROCESSING, "Processing"),
        (OUTCOME_CHARGE_UNKNOWN, "Charge Outcome Unknown"),
        (OUTCOME_CHARGED, "Charged, Transfer In Flight"),
        (OUTCOME_TRANSFER_UNKNOWN, "Transfer Outcome Unknown"),
        (OUTCOME_CHARGE_FAILED, "Charge Failed"),
        (OUTCOME_TRANSFER_PENDING, "Charge Succeeded, Transfer Pending"),
        (OUTCOME_TRANSFER_FAILED, "Charge Succeeded, Transfer Failed"),
        (OUTCOME_COMPLETED, "Completed"),
    ]

    TERMINAL_OUTCOMES = frozenset(
        [OUTCOME_CHARGE_FAILED, OUTCOME_TRANSFER_PENDING, OUTCOME_TRANSFER_FAILED, OUTCOME_COMPLETED]
    )
    # Terminal outcomes where the buyer was charged; replays return these unchanged
    TERMINAL_CHARGED_OUTCOMES = frozenset([OUTCOME_TRANSFER_PENDING, OUTCOME_TRANSFER_FAILED, OUTCOME_COMPLETED])
    IN_FLIGHT_OUTCOMES = frozenset(
        [OUTCOME_PROCESSING, OUTCOME_CHARGE_UNKNOWN, OUTCOME_CHARGED, OUTCOME_TRANSFER_UNKNOWN]
    )

    ALLOWED_TRANSITIONS = {
        OUTCOME_PROCESSING: {OUTCOME_CHARGE_FAILED, OUTCOME_CHARGE_UNKNOWN, OUTCOME_CHARGED},
        OUTCOME_CHARGE_UNKNOWN: {OUTCOME_CHARGE_FAILED, OUTCOME_CHARGED},
        OUTCOME_CHARGED: {
            OUTCOME_COMPLETED,
            OUTCOME_TRANSFER_PENDING,
            OUTCOME_TRANSFER_FAILED,
            OUTCOME_TRANSFER_UNKNOWN,
        },
        OUTCOME_TRANSFER_UNKNOWN: {OUTCOME_COMPLETED, OUTCOME_TRANSFER_FAILED},
    }

    MONEY_FIELDS = ("total_amount", "commission_rate", "platform_commission", "seller_payout", "currency")

    # Identifiers
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey("marketplace.Order", on_delete=models.PROTECT, related_name="settlement_records")
    attempt_number = models.PositiveIntegerField()
    idempotency_key = models.CharField(max_length=255, unique=True, help_text="Charge idempotency key")

    # Commission split; three decimal places hold every minor unit (KWD, BHD, ...)
    currency = models.CharField(max_length=3, default="usd")
    total_amount = models.DecimalField(max_digits=12, decimal_places=3)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=4)
    platform_commission = models.DecimalField(max_digits=12, decimal_places=3)
    seller_payout = models.DecimalField(max_digits=12, decimal_places=3)

    # External references
    payment_method_ref = models.CharField(max_length=255, help_text="Payment method charged; replays reuse it")
    payout_destination = models.CharField(max_length=255, blank=True)
    charge_ref = models.CharField(max_length=255, blank=True, db_index=True)
    transfer_ref = models.CharField(max_length=255, blank=True, db_index=True)

    # Outcome
    outcome = models.CharField(max_length=40, choices=OUTCOME_CHOICES, default=OUTCOME_PROCESSING, db_index=True)
    transfer_attempts = models.PositiveIntegerField(default=0)
    failure_code = models.CharField(max_length=100, blank=True)
    failure_message = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "payment_settlement_records"
        ordering = ["-attempt_number"]
        constraints = [
            models.UniqueConstraint(fields=["order", "attempt_number"], name="unique_settlement_attempt"),
        ]
        indexes = [
            models.Index(fields=["outcome", "-updated_at"], name="settlement_outcome_idx"),
        ]

    def __str__(self):
        return f"Settlement {str(self.order_id)[:8]}#{self.attempt_number} [{self.outcome}]"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._persisted_state = instance._snapshot()
        return instance

    def _snapshot(self):
        return {name: getattr(self, name) for name in ("outcome",) + self.MONEY_FIELDS}

    @property
    def is_terminal(self) -> bool:
        return self.outcome in self.TERMINAL_OUTCOMES

    @property
    def transfer_idempotency_key(self) -> str:
        """Key of the latest transfer attempt; each attempt gets a new one after a definite refusal."""
        return f"settlement-{self.order_id}-{self.attempt_number}-transfer-{self.transfer_attempts}"

    def start_transfer_attempt(self) -> str:
        """Count a new transfer attempt before it is sent and return its idempotency key."""
        self.transfer_attempts += 1
        self.save(update_fields=["transfer_attempts", "updated_at"])
        return self.transfer_idempotency_key

    def can_transition_to(self, outcome: str) -> bool:
        return outcome in self.ALLOWED_TRANSITIONS.get(self.outcome, set())

    def transition_to(self, outcome: str, **fields):
        """Move to a new outcome and save. Raises SettlementStateError on an illegal move."""
        if not self.can_transition_to(outcome):
            raise SettlementStateError(f"Settlement {self.id} cannot move from {self.outcome} to {outcome}")
        self.outcome = outcome
        for name, value in fields.items():
            setattr(self, name, value)
        self.save()

    def save(self, *args, **kwargs):
        if self.platform_commission + self.seller_payout != self.total_amount:
            raise SettlementStateError(
                f"Commission {self.platform_commission} + payout {self.seller_payout} != total {self.total_amount}"
            )

        persisted = getattr(self, "_persisted_state", None)
        if persisted is not None:
            if persisted["outcome"] in self.TERMINAL_OUTCOMES:
                raise SettlementStateError(f"Settlement {self.id} is terminal ({persisted['outcome']})")
            if persisted["outcome"] != self.outcome and self.outcome not in self.ALLOWED_TRANSITIONS.get(
                persisted["outcome"], set()
            ):
                raise SettlementStateError(
                    f"Settlement {self.id} cannot move from {persisted['outcome']} to {self.outcome}"
                )
            for name in self.MONEY_FIELDS:
                before, after = persisted[name], getattr(self, name)
                if name != "currency":
                    before, after = Decimal(str(before)), Decimal(str(after))
                if before != after:
                    raise SettlementStateError(f"Settlement {self.id} field {name} is immutable")

        super().save(*args, **kwargs)
        self._persisted_state = self._snapshot()
