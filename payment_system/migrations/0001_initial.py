import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SettlementRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("attempt_number", models.PositiveIntegerField()),
                (
                    "idempotency_key",
                    models.CharField(help_text="Charge idempotency key", max_length=255, unique=True),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("commission_rate", models.DecimalField(decimal_places=4, max_digits=5)),
                ("platform_commission", models.DecimalField(decimal_places=2, max_digits=10)),
                ("seller_payout", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "payment_method_ref",
                    models.CharField(help_text="Payment method charged; replays reuse it", max_length=255),
                ),
                ("payout_destination", models.CharField(blank=True, max_length=255)),
                ("charge_ref", models.CharField(blank=True, db_index=True, max_length=255)),
                ("transfer_ref", models.CharField(blank=True, db_index=True, max_length=255)),
                (
                    "outcome",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("charge_outcome_unknown", "Charge Outcome Unknown"),
                            ("charged", "Charged, Transfer In Flight"),
                            ("transfer_outcome_unknown", "Transfer Outcome Unknown"),
                            ("charge_failed", "Charge Failed"),
                            ("charge_succeeded_transfer_pending", "Charge Succeeded, Transfer Pending"),
                            ("charge_succeeded_transfer_failed", "Charge Succeeded, Transfer Failed"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="processing",
                        max_length=40,
                    ),
                ),
                ("transfer_attempts", models.PositiveIntegerField(default=0)),
                ("failure_code", models.CharField(blank=True, max_length=100)),
                ("failure_message", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="settlement_records",
                        to="marketplace.order",
                    ),
                ),
            ],
            options={
                "db_table": "payment_settlement_records",
                "ordering": ["-attempt_number"],
                "indexes": [
                    models.Index(fields=["outcome", "-updated_at"], name="settlement_outcome_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("order", "attempt_number"), name="unique_settlement_attempt"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("pending_payout", "Pending Payout"),
                            ("failed_transfer", "Failed Transfer"),
                            ("unknown_charge", "Unknown Charge Outcome"),
                            ("unknown_transfer", "Unknown Transfer Outcome"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("open", "Open"), ("resolved", "Resolved"), ("abandoned", "Abandoned")],
                        db_index=True,
                        default="open",
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("next_attempt_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("last_error", models.TextField(blank=True)),
                (
                    "resolution_ref",
                    models.CharField(blank=True, help_text="Transfer/charge id or manual reference", max_length=255),
                ),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "settlement",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reconciliation_entries",
                        to="payment_system.settlementrecord",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Reconciliation entries",
                "db_table": "payment_reconciliation_entries",
                "ordering": ["next_attempt_at", "created_at"],
                "indexes": [
                    models.Index(fields=["status", "next_attempt_at"], name="reconciliation_due_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "open")),
                        fields=("settlement", "kind"),
                        name="unique_open_reconciliation_entry",
                    ),
                ],
            },
        ),
    ]
