"""
ReconciliationService - out-of-band settlement repair

Works the durable reconciliation queue:

- unknown_charge / unknown_transfer: re-issue the provider call with the
  original idempotency key. The provider answers with the original result,
  so money never moves twice. An abandoned entry ends its record in a
  terminal outcome.
- pending_payout / failed_transfer: pay the seller once a payout destination
  exists. The terminal SettlementRecord is left untouched; the payout is
  recorded on the entry (resolution_ref). The payout key only changes after
  the provider refuses a payout.

Each due entry is claimed under a row lock and pushed to its next backoff
slot before any provider call, so overlapping sweeps skip it.
"""

from dataclasses import asdict
from datetime import timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from infrastructure.events import get_event_bus
from infrastructure.payments.interface import (
    PaymentDeclined,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
)
from marketplace.models import SellerAccount
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from payment_system.domain.events.definitions import PayoutReconciled
from payment_system.domain.exceptions import TransferFailed
from payment_system.domain.models import ReconciliationEntry, SettlementRecord
from payment_system.domain.services.alerts import REASON_RECONCILIATION_ABANDONED, raise_operator_alert
from payment_system.domain.services.currency import from_minor_units
from payment_system.domain.services.settlement_service import (
    SettlementService,
    charge_metadata,
    open_reconciliation_entry,
    transfer_metadata,
)
from payment_system.infra.observability.metrics import payout_volume_total, reconciliation_results_total
from utils.logging_utils import mask_value
from utils.transaction_utils import log_transaction_performance, retry_on_deadlock


RESOLVED = "resolved"
RESCHEDULED = "rescheduled"
ABANDONED = "abandoned"

DEFAULT_MAX_ATTEMPTS = 8
DEFAULT_BACKOFF_SECONDS = 300
DEFAULT_STALE_ATTEMPT_SECONDS = 900

# What an operator may report for a charge or transfer the sweep could not confirm
OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"
MANUAL_OUTCOMES = (OUTCOME_SUCCEEDED, OUTCOME_FAILED)
MANUAL_FAILURE_CODE = "resolved_manually"

UNCONFIRMED_OUTCOMES = {
    ReconciliationEntry.KIND_UNKNOWN_CHARGE: SettlementRecord.OUTCOME_CHARGE_UNKNOWN,
    ReconciliationEntry.KIND_UNKNOWN_TRANSFER: SettlementRecord.OUTCOME_TRANSFER_UNKNOWN,
}


class ReconciliationService(BaseService):
    """
    Service for finishing settlements the request path could not.

    Dependencies:
    - SettlementService: ledger transitions shared with the request path
    - PaymentProviderInterface: re-issued charges and payouts
    - EventBus: payout events and operator alerts
    """

    def __init__(
        self,
        settlement_service: SettlementService = None,
        payment_provider: PaymentProviderInterface = None,
        event_bus=None,
    ):
        super().__init__()
        self.event_bus = event_bus or get_event_bus()
        if settlement_service is None:
            settlement_service = SettlementService(payment_provider=payment_provider, event_bus=self.event_bus)
        self.settlement_service = settlement_service
        self.payment_provider = payment_provider or settlement_service.payment_provider

        config = getattr(settings, "SETTLEMENT", {})
        self.max_attempts = int(config.get("MAX_RECONCILIATION_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))
        self.backoff_seconds = int(config.get("RECONCILIATION_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS))
        self.stale_after_seconds = int(config.get("STALE_ATTEMPT_SECONDS", DEFAULT_STALE_ATTEMPT_SECONDS))

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    @BaseService.log_performance
    def run_sweep(self, limit: int = 100) -> ServiceResult[Dict[str, int]]:
        """
        Process up to ``limit`` due open entries.

        Returns:
            ServiceResult with counts {processed, resolved, rescheduled, abandoned, requeued}
        """
        counts = {"processed": 0, RESOLVED: 0, RESCHEDULED: 0, ABANDONED: 0, "requeued": 0}
        counts["requeued"] = self.requeue_stale_attempts()

        due_ids = list(
            ReconciliationEntry.objects.filter(
                status=ReconciliationEntry.STATUS_OPEN, next_attempt_at__lte=timezone.now()
            )
            .order_by("next_attempt_at")
            .values_list("id", flat=True)[:limit]
        )

        for entry_id in due_ids:
            entry = self._claim(entry_id)
            if entry is None:
                continue

            try:
                result = self._process(entry)
            except PaymentException as e:
                result = self._reschedule(entry, str(e))

            counts["processed"] += 1
            counts[result] += 1
            reconciliation_results_total.labels(kind=entry.kind, result=result).inc()

        if counts["processed"]:
            self.logger.info(f"Reconciliation sweep finished: {counts}")
        return service_ok(counts)

    @log_transaction_performance
    def requeue_stale_attempts(self) -> int:
        """
        Queue attempts stuck in processing/charged (e.g. the worker died mid-call)
        as unknown outcomes so the sweep can confirm them.
        """
        cutoff = timezone.now() - timedelta(seconds=self.stale_after_seconds)
        stale = SettlementRecord.objects.filter(
            outcome__in=[SettlementRecord.OUTCOME_PROCESSING, SettlementRecord.OUTCOME_CHARGED],
            updated_at__lt=cutoff,
        )

        requeued = 0
        for record in stale:
            detail = f"Attempt stalled in {record.outcome}"
            if record.outcome == SettlementRecord.OUTCOME_PROCESSING:
                record.transition_to(SettlementRecord.OUTCOME_CHARGE_UNKNOWN, failure_code="stalled", failure_message=detail)
                open_reconciliation_entry(record, ReconciliationEntry.KIND_UNKNOWN_CHARGE, record.total_amount, detail)
            else:
                record.transition_to(
                    SettlementRecord.OUTCOME_TRANSFER_UNKNOWN, failure_code="stalled", failure_message=detail
                )
                open_reconciliation_entry(
                    record, ReconciliationEntry.KIND_UNKNOWN_TRANSFER, record.seller_payout, detail
                )
            self.logger.warning(f"Requeued stalled settlement {record.id} for order {record.order_id}")
            requeued += 1
        return requeued

    @retry_on_deadlock(max_retries=2)
    def _claim(self, entry_id) -> Optional[ReconciliationEntry]:
        now = timezone.now()
        with transaction.atomic():
            entry = (
                ReconciliationEntry.objects.select_for_update()
                .select_related("settlement", "settlement__order")
                .filter(id=entry_id)
                .first()
            )
            if entry is None or not entry.is_open or entry.next_attempt_at > now:
                return None
            entry.attempts += 1
            entry.next_attempt_at = now + timedelta(seconds=self.backoff_seconds * 2**entry.attempts)
            entry.save(update_fields=["attempts", "next_attempt_at", "updated_at"])
        return entry

    def _process(self, entry: ReconciliationEntry) -> str:
        handlers = {
            ReconciliationEntry.KIND_UNKNOWN_CHARGE: self._confirm_charge,
            ReconciliationEntry.KIND_UNKNOWN_TRANSFER: self._confirm_transfer,
            ReconciliationEntry.KIND_PENDING_PAYOUT: self._pay_out_entry,
            ReconciliationEntry.KIND_FAILED_TRANSFER: self._pay_out_entry,
        }
        return handlers[entry.kind](entry)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _confirm_charge(self, entry: ReconciliationEntry) -> str:
        record = SettlementRecord.objects.get(id=entry.settlement_id)
        if record.outcome != SettlementRecord.OUTCOME_CHARGE_UNKNOWN:
            return self._resolve(entry, record.charge_ref, f"Already {record.outcome}")

        seller_account = SellerAccount.objects.filter(seller_id=record.order.seller_id).first()
        try:
            result = self.payment_provider.charge(
                amount=record.total_amount,
                currency=record.currency,
                payment_method_ref=record.payment_method_ref,
                idempotency_key=record.idempotency_key,
                metadata=charge_metadata(record),
            )
        except PaymentDeclined as e:
            self.settlement_service.fail_charge(record, e.code or "card_declined", str(e), charge_ref=e.reference or "")
            return self._resolve(entry, e.reference or "", "Charge declined")

        if result.status in (PaymentStatus.PROCESSING, PaymentStatus.PENDING):
            return self._reschedule(entry, f"Charge {result.charge_ref} still {result.status.value}")

        if result.status != PaymentStatus.SUCCEEDED:
            self.settlement_service.fail_charge(
                record, result.failure_code or result.status.value, result.failure_message or "", result.charge_ref
            )
            return self._resolve(entry, result.charge_ref, "Charge failed")

        self.settlement_service.mark_charged(
            record, result.charge_ref, from_minor_units(result.amount, result.currency)
        )
        resolved = self._resolve(entry, result.charge_ref, "Charge confirmed")
        self.settlement_service.pay_out(record, seller_account)
        return resolved

    def _confirm_transfer(self, entry: ReconciliationEntry) -> str:
        record = SettlementRecord.objects.get(id=entry.settlement_id)
        if record.outcome != SettlementRecord.OUTCOME_TRANSFER_UNKNOWN:
            return self._resolve(entry, record.transfer_ref, f"Already {record.outcome}")

        # Replay the last attempt's key; a record that stalled before its first transfer gets one
        if record.transfer_attempts:
            idempotency_key = record.transfer_idempotency_key
        else:
            idempotency_key = record.start_transfer_attempt()
        try:
            result = self.payment_provider.transfer(
                amount=record.seller_payout,
                currency=record.currency,
                destination_account=record.payout_destination,
                idempotency_key=idempotency_key,
                metadata=transfer_metadata(record),
            )
        except PaymentDeclined as e:
            self.settlement_service.fail_transfer(record, e.code or TransferFailed.code, str(e))
            return self._resolve(entry, "", "Transfer failed; moved to failed_transfer")

        if not result.succeeded:
            self.settlement_service.fail_transfer(record, TransferFailed.code, f"Transfer {result.status.value}")
            return self._resolve(entry, result.transfer_ref, "Transfer failed; moved to failed_transfer")

        self.settlement_service.complete(record, result.transfer_ref)
        return self._resolve(entry, result.transfer_ref, "Transfer confirmed")

    def _pay_out_entry(self, entry: ReconciliationEntry) -> str:
        record = entry.settlement
        account = SellerAccount.objects.filter(seller_id=record.order.seller_id).first()
        if account is None or not account.has_payout_destination:
            return self._reschedule(entry, "Seller has no payout destination")

        try:
            result = self.payment_provider.transfer(
                amount=entry.amount,
                currency=entry.currency,
                destination_account=account.payout_destination,
                idempotency_key=entry.payout_idempotency_key,
                metadata={
                    "order_id": str(record.order_id),
                    "settlement_id": str(record.id),
                    "reconciliation_entry_id": str(entry.id),
                },
            )
        except PaymentDeclined as e:
            entry.record_declined_payout()
            return self._reschedule(entry, str(e))

        if result.status in (PaymentStatus.FAILED, PaymentStatus.CANCELED):
            entry.record_declined_payout()
        if not result.succeeded:
            return self._reschedule(entry, f"Transfer {result.transfer_ref} returned {result.status.value}")

        outcome = self._resolve(entry, result.transfer_ref, f"Paid out to {mask_value(account.payout_destination)}")
        payout_volume_total.labels(currency=entry.currency, status="succeeded").inc(float(entry.amount))
        self._settle_order(record, f"Reconciled payout {result.transfer_ref}")

        event = PayoutReconciled(
            order_id=str(record.order_id),
            settlement_id=str(record.id),
            entry_id=str(entry.id),
            resolution_ref=result.transfer_ref,
            amount=entry.amount,
            currency=entry.currency,
            occurred_at=timezone.now(),
        )
        self.event_bus.publish("settlement.payout_reconciled", asdict(event))
        return outcome

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def list_entries(self, status: str = ReconciliationEntry.STATUS_OPEN) -> ServiceResult[List[ReconciliationEntry]]:
        entries = ReconciliationEntry.objects.select_related("settlement__order").order_by("next_attempt_at")
        if status:
            entries = entries.filter(status=status)
        return service_ok(list(entries))

    @BaseService.log_performance
    def resolve_manually(
        self, entry_id, resolution_ref: str, notes: str = "", outcome: Optional[str] = None
    ) -> ServiceResult[ReconciliationEntry]:
        """
        Mark an open or abandoned entry resolved after an operator handled it by hand.

        Args:
            entry_id: Entry to resolve
            resolution_ref: Provider reference for the manual fix
            notes: Optional operator notes
            outcome: "succeeded" or "failed". Required while an unknown_charge or
                unknown_transfer record is still unconfirmed; the record moves to
                the matching outcome.

        Payout entries, and transfers the operator confirmed, also move the order to settled.
        """
        if not resolution_ref:
            return service_err(ErrorCodes.VALIDATION_ERROR, "A resolution reference is required")
        if outcome is not None and outcome not in MANUAL_OUTCOMES:
            return service_err(ErrorCodes.VALIDATION_ERROR, f"Outcome must be one of {', '.join(MANUAL_OUTCOMES)}")

        with transaction.atomic():
            try:
                entry = (
                    ReconciliationEntry.objects.select_for_update().select_related("settlement").get(id=entry_id)
                )
            except (ReconciliationEntry.DoesNotExist, ValidationError):
                return service_err(ErrorCodes.RECONCILIATION_ENTRY_NOT_FOUND, f"Entry {entry_id} not found")

            if entry.status == ReconciliationEntry.STATUS_RESOLVED:
                return service_err(ErrorCodes.VALIDATION_ERROR, f"Entry {entry_id} is already resolved")

            record = SettlementRecord.objects.select_for_update().get(id=entry.settlement_id)
            unconfirmed = UNCONFIRMED_OUTCOMES.get(entry.kind) == record.outcome
            if unconfirmed and outcome is None:
                return service_err(
                    ErrorCodes.VALIDATION_ERROR,
                    f"Entry {entry_id} needs the confirmed outcome ({', '.join(MANUAL_OUTCOMES)})",
                )

            entry.mark_resolved(resolution_ref, notes=notes or "Resolved manually")
            if unconfirmed:
                self._apply_manual_outcome(record, outcome, resolution_ref, notes)

        self.logger.info(f"Reconciliation entry {entry.id} resolved manually ({mask_value(resolution_ref)})")
        if unconfirmed:
            if record.outcome == SettlementRecord.OUTCOME_CHARGED:
                seller_account = SellerAccount.objects.filter(seller_id=record.order.seller_id).first()
                self.settlement_service.pay_out(record, seller_account)
        elif entry.kind in ReconciliationEntry.PAYOUT_KINDS or (
            entry.kind == ReconciliationEntry.KIND_UNKNOWN_TRANSFER and outcome != OUTCOME_FAILED
        ):
            self._settle_order(entry.settlement, f"Payout resolved manually: {resolution_ref}")
        return service_ok(entry)

    def _apply_manual_outcome(self, record: SettlementRecord, outcome: str, resolution_ref: str, notes: str):
        detail = notes or f"Confirmed {outcome} by operator ({resolution_ref})"
        if record.outcome == SettlementRecord.OUTCOME_CHARGE_UNKNOWN:
            if outcome == OUTCOME_SUCCEEDED:
                self.settlement_service.mark_charged(record, resolution_ref)
            else:
                self.settlement_service.fail_charge(record, MANUAL_FAILURE_CODE, detail)
        elif outcome == OUTCOME_SUCCEEDED:
            self.settlement_service.complete(record, resolution_ref)
        else:
            # The seller is still owed; the new failed_transfer entry carries the payout
            self.settlement_service.fail_transfer(record, MANUAL_FAILURE_CODE, detail)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, entry: ReconciliationEntry, resolution_ref: str, notes: str) -> str:
        entry.mark_resolved(resolution_ref or "", notes=notes)
        self.logger.info(f"Resolved {entry.kind} entry {entry.id}: {notes}")
        return RESOLVED

    def _reschedule(self, entry: ReconciliationEntry, error: str) -> str:
        entry.last_error = error
        if entry.attempts >= self.max_attempts:
            entry.status = ReconciliationEntry.STATUS_ABANDONED
            entry.save(update_fields=["last_error", "status", "updated_at"])
            self._close_unconfirmed(entry, error)
            raise_operator_alert(
                self.event_bus,
                entry.settlement,
                REASON_RECONCILIATION_ABANDONED,
                f"{entry.kind} entry {entry.id} abandoned after {entry.attempts} attempts: {error}",
                amount=entry.amount,
            )
            return ABANDONED

        entry.save(update_fields=["last_error", "updated_at"])
        self.logger.warning(
            f"Rescheduled {entry.kind} entry {entry.id} (attempt {entry.attempts}) for {entry.next_attempt_at}: {error}"
        )
        return RESCHEDULED

    def _close_unconfirmed(self, entry: ReconciliationEntry, error: str):
        """Move a record still waiting on this entry's confirmation to a terminal outcome."""
        record = SettlementRecord.objects.get(id=entry.settlement_id)
        if UNCONFIRMED_OUTCOMES.get(entry.kind) != record.outcome:
            return

        detail = f"Unconfirmed after {entry.attempts} reconciliation attempts: {error}"
        if record.outcome == SettlementRecord.OUTCOME_CHARGE_UNKNOWN:
            self.settlement_service.fail_charge(record, REASON_RECONCILIATION_ABANDONED, detail)
        else:
            self.settlement_service.close_unconfirmed_transfer(record, REASON_RECONCILIATION_ABANDONED, detail)

    def _settle_order(self, record: SettlementRecord, reason: str):
        result = self.settlement_service.order_service.update_order_status(record.order_id, "settled", reason=reason)
        if not result.ok:
            self.logger.error(f"Could not settle order {record.order_id}: {result.error_detail}")
