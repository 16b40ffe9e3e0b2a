from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, override_settings
from django.utils import timezone

from infrastructure.events import InMemoryEventBus
from infrastructure.payments import MockPaymentProvider
from marketplace.services import ErrorCodes, OrderService
from marketplace.tests.factories import OrderFactory, SellerAccountFactory
from payment_system.domain.models import ReconciliationEntry, SettlementRecord
from payment_system.domain.services.reconciliation_service import ReconciliationService
from payment_system.domain.services.settlement_service import SettlementService


class ReconciliationTestCase(TestCase):
    def setUp(self):
        self.provider = MockPaymentProvider()
        self.event_bus = InMemoryEventBus()
        self.settlement_service = SettlementService(
            payment_provider=self.provider,
            event_bus=self.event_bus,
            order_service=OrderService(event_bus=self.event_bus),
            commission_rate=Decimal("0.10"),
        )
        self.service = ReconciliationService(settlement_service=self.settlement_service, event_bus=self.event_bus)
        self.account = SellerAccountFactory()
        self.order = OrderFactory(seller=self.account.seller, total_amount=Decimal("19.99"))

    def settle(self, account=None, order=None):
        order = order or self.order
        return self.settlement_service.settle_order(order.id, account or self.account, "pm_card_visa")

    def make_due(self, entry):
        ReconciliationEntry.objects.filter(pk=entry.pk).update(next_attempt_at=timezone.now() - timedelta(seconds=1))

    def sweep(self):
        result = self.service.run_sweep()
        self.assertTrue(result.ok)
        return result.value


class UnknownChargeTests(ReconciliationTestCase):
    def test_timed_out_charge_is_confirmed_and_paid_out_once(self):
        self.provider.time_out_next_charge()
        record = self.settle().value.record

        counts = self.sweep()

        self.assertEqual(counts["processed"], 1)
        self.assertEqual(counts["resolved"], 1)

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)
        self.assertEqual(len(self.provider.successful_charges), 1)
        self.assertEqual(len(self.provider.transfers), 1)

        entry = ReconciliationEntry.objects.get(settlement=record)
        self.assertEqual(entry.status, ReconciliationEntry.STATUS_RESOLVED)
        self.assertEqual(entry.resolution_ref, record.charge_ref)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "settled")

    def test_charge_still_processing_is_rescheduled(self):
        self.provider.leave_processing("pm_card_visa")
        record = self.settle().value.record

        counts = self.sweep()

        self.assertEqual(counts["rescheduled"], 1)
        entry = ReconciliationEntry.objects.get(settlement=record)
        self.assertTrue(entry.is_open)
        self.assertEqual(entry.attempts, 1)
        self.assertGreater(entry.next_attempt_at, timezone.now())

        # Not due yet, so an immediate second sweep leaves it alone
        self.assertEqual(self.sweep()["processed"], 0)

        self.provider.release_processing("pm_card_visa")
        self.make_due(entry)
        self.assertEqual(self.sweep()["resolved"], 1)

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)

    def test_stalled_processing_attempt_is_requeued(self):
        record = SettlementRecord.objects.create(
            order=self.order,
            attempt_number=1,
            idempotency_key=f"settlement-{self.order.id}-1-charge",
            total_amount=Decimal("19.99"),
            commission_rate=Decimal("0.10"),
            platform_commission=Decimal("2.00"),
            seller_payout=Decimal("17.99"),
            payment_method_ref="pm_card_visa",
            payout_destination=self.account.payout_destination,
        )
        SettlementRecord.objects.filter(pk=record.pk).update(updated_at=timezone.now() - timedelta(hours=1))

        counts = self.sweep()

        self.assertEqual(counts["requeued"], 1)
        self.assertEqual(counts["resolved"], 1)
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)
        self.assertEqual(len(self.provider.successful_charges), 1)

    def test_recent_processing_attempt_is_left_alone(self):
        SettlementRecord.objects.create(
            order=self.order,
            attempt_number=1,
            idempotency_key=f"settlement-{self.order.id}-1-charge",
            total_amount=Decimal("19.99"),
            commission_rate=Decimal("0.10"),
            platform_commission=Decimal("2.00"),
            seller_payout=Decimal("17.99"),
            payment_method_ref="pm_card_visa",
        )

        self.assertEqual(self.sweep()["requeued"], 0)


class PayoutReconciliationTests(ReconciliationTestCase):
    def test_pending_payout_waits_for_destination(self):
        account = SellerAccountFactory(unonboarded=True)
        order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        record = self.settle(account=account, order=order).value.record
        entry = ReconciliationEntry.objects.get(settlement=record)

        self.assertEqual(self.sweep()["rescheduled"], 1)
        self.assertEqual(self.provider.transfers, {})

        account.payout_destination = "acct_onboarded01"
        account.save()
        self.make_due(entry)
        counts = self.sweep()

        self.assertEqual(counts["resolved"], 1)
        entry.refresh_from_db()
        self.assertEqual(entry.status, ReconciliationEntry.STATUS_RESOLVED)

        transfer = self.provider.transfers[f"settlement-{order.id}-1-payout-{entry.pk}-0"]
        self.assertEqual(transfer.destination, "acct_onboarded01")
        self.assertEqual(transfer.amount, 1799)
        self.assertEqual(entry.resolution_ref, transfer.transfer_ref)

        # The terminal ledger record is never rewritten
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_TRANSFER_PENDING)

        order.refresh_from_db()
        self.assertEqual(order.status, "settled")
        self.assertEqual(len(self.event_bus.events_of_type("settlement.payout_reconciled")), 1)

    def test_failed_transfer_is_paid_on_next_sweep(self):
        self.provider.fail_transfers_to(self.account.payout_destination, times=3)
        record = self.settle().value.record

        counts = self.sweep()

        self.assertEqual(counts["resolved"], 1)
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_TRANSFER_FAILED)
        self.assertEqual(len(self.provider.transfers), 1)

    def test_unknown_transfer_is_confirmed_with_original_key(self):
        self.provider.time_out_next_transfer()
        record = self.settle().value.record

        counts = self.sweep()

        self.assertEqual(counts["resolved"], 1)
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)
        self.assertEqual(list(self.provider.transfers), [record.transfer_idempotency_key])

    def test_declined_payout_is_retried_under_a_new_key(self):
        self.provider.fail_transfers_to(self.account.payout_destination, times=4)
        record = self.settle().value.record
        entry = ReconciliationEntry.objects.get(settlement=record)

        self.assertEqual(self.sweep()["rescheduled"], 1)
        entry.refresh_from_db()
        self.assertEqual(entry.declined_payouts, 1)

        self.make_due(entry)
        self.assertEqual(self.sweep()["resolved"], 1)

        prefix = f"settlement-{self.order.id}-1-payout-{entry.pk}"
        transfer_calls = [key for kind, key in self.provider.calls if kind == "transfer"]
        self.assertEqual(transfer_calls[-2:], [f"{prefix}-0", f"{prefix}-1"])
        self.assertIn(f"{prefix}-1", self.provider.transfers)

    def test_timed_out_payout_keeps_its_key(self):
        account = SellerAccountFactory(unonboarded=True)
        order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        record = self.settle(account=account, order=order).value.record
        entry = ReconciliationEntry.objects.get(settlement=record)
        account.payout_destination = "acct_onboarded01"
        account.save()
        self.provider.time_out_next_transfer()

        self.assertEqual(self.sweep()["rescheduled"], 1)
        self.make_due(entry)
        self.assertEqual(self.sweep()["resolved"], 1)

        entry.refresh_from_db()
        self.assertEqual(entry.declined_payouts, 0)
        key = f"settlement-{order.id}-1-payout-{entry.pk}-0"
        self.assertEqual([k for kind, k in self.provider.calls if kind == "transfer"], [key, key])

    @override_settings(SETTLEMENT={"MAX_RECONCILIATION_ATTEMPTS": 1, "TRANSFER_RETRY_WAIT_SECONDS": (0, 0)})
    def test_entry_abandoned_after_max_attempts(self):
        service = ReconciliationService(settlement_service=self.settlement_service, event_bus=self.event_bus)
        account = SellerAccountFactory(unonboarded=True)
        order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        record = self.settle(account=account, order=order).value.record

        with self.assertLogs("payment_system.domain.services.alerts", level="CRITICAL"):
            counts = service.run_sweep().value

        self.assertEqual(counts["abandoned"], 1)
        entry = ReconciliationEntry.objects.get(settlement=record)
        self.assertEqual(entry.status, ReconciliationEntry.STATUS_ABANDONED)
        alert = self.event_bus.events_of_type("settlement.alert")[-1]
        self.assertEqual(alert["payload"]["reason"], "reconciliation_abandoned")

    def test_claimed_entry_is_skipped_by_overlapping_sweep(self):
        account = SellerAccountFactory(unonboarded=True)
        order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        record = self.settle(account=account, order=order).value.record
        entry = ReconciliationEntry.objects.get(settlement=record)

        self.assertIsNotNone(self.service._claim(entry.pk))
        self.assertIsNone(self.service._claim(entry.pk))


class OperatorActionTests(ReconciliationTestCase):
    def setUp(self):
        super().setUp()
        account = SellerAccountFactory(unonboarded=True)
        self.pending_order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        record = self.settle(account=account, order=self.pending_order).value.record
        self.entry = ReconciliationEntry.objects.get(settlement=record)

    def test_list_entries(self):
        self.assertEqual(self.service.list_entries().value, [self.entry])
        self.assertEqual(self.service.list_entries(status=ReconciliationEntry.STATUS_RESOLVED).value, [])

    def test_resolve_manually_settles_order(self):
        result = self.service.resolve_manually(self.entry.pk, "tr_manual_001", notes="Paid by bank wire")

        self.assertTrue(result.ok)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, ReconciliationEntry.STATUS_RESOLVED)
        self.assertEqual(self.entry.resolution_ref, "tr_manual_001")
        self.assertEqual(self.entry.notes, "Paid by bank wire")

        self.pending_order.refresh_from_db()
        self.assertEqual(self.pending_order.status, "settled")

    def test_resolve_twice_is_rejected(self):
        self.service.resolve_manually(self.entry.pk, "tr_manual_001")

        result = self.service.resolve_manually(self.entry.pk, "tr_manual_002")

        self.assertEqual(result.error, ErrorCodes.VALIDATION_ERROR)

    def test_resolve_requires_reference(self):
        self.assertEqual(self.service.resolve_manually(self.entry.pk, "").error, ErrorCodes.VALIDATION_ERROR)

    def test_resolve_unknown_entry(self):
        result = self.service.resolve_manually("00000000-0000-0000-0000-000000000000", "tr_manual_001")

        self.assertEqual(result.error, ErrorCodes.RECONCILIATION_ENTRY_NOT_FOUND)


class UnconfirmedOutcomeTests(ReconciliationTestCase):
    """Unknown charges and transfers always end in a terminal ledger outcome."""

    def timed_out_charge(self):
        self.provider.time_out_next_charge()
        record = self.settle().value.record
        return record, ReconciliationEntry.objects.get(settlement=record)

    def timed_out_transfer(self, times=1):
        self.provider.time_out_next_transfer(times)
        record = self.settle().value.record
        return record, ReconciliationEntry.objects.get(settlement=record)

    def test_unknown_charge_needs_confirmed_outcome(self):
        record, entry = self.timed_out_charge()

        result = self.service.resolve_manually(entry.pk, "pi_manual_check")

        self.assertEqual(result.error, ErrorCodes.VALIDATION_ERROR)
        entry.refresh_from_db()
        self.assertTrue(entry.is_open)

    def test_resolve_rejects_unknown_outcome_value(self):
        record, entry = self.timed_out_charge()

        result = self.service.resolve_manually(entry.pk, "pi_manual_check", outcome="refunded")

        self.assertEqual(result.error, ErrorCodes.VALIDATION_ERROR)

    def test_unknown_charge_confirmed_failed_frees_the_order(self):
        record, entry = self.timed_out_charge()

        result = self.service.resolve_manually(entry.pk, "re_manual_refund", outcome="failed")

        self.assertTrue(result.ok)
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_CHARGE_FAILED)
        self.assertEqual(record.failure_code, "resolved_manually")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "failed")

        retry = self.settlement_service.settle_order(self.order.id, self.account, "pm_card_mastercard")

        self.assertTrue(retry.ok)
        self.assertEqual(retry.value.record.attempt_number, 2)

    def test_unknown_charge_confirmed_succeeded_pays_out(self):
        record, entry = self.timed_out_charge()

        result = self.service.resolve_manually(entry.pk, "pi_seen_in_dashboard", outcome="succeeded")

        self.assertTrue(result.ok)
        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)
        self.assertEqual(record.charge_ref, "pi_seen_in_dashboard")
        self.assertEqual(len(self.provider.transfers), 1)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "settled")

        replay = self.settle()
        self.assertTrue(replay.value.replayed)

    def test_unknown_transfer_confirmed_succeeded_completes(self):
        record, entry = self.timed_out_transfer()

        self.service.resolve_manually(entry.pk, "tr_seen_in_dashboard", outcome="succeeded")

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_COMPLETED)
        self.assertEqual(record.transfer_ref, "tr_seen_in_dashboard")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "settled")

    def test_unknown_transfer_confirmed_failed_queues_the_payout(self):
        record, entry = self.timed_out_transfer()

        with self.assertLogs("payment_system.domain.services.alerts", level="CRITICAL"):
            self.service.resolve_manually(entry.pk, "tr_never_arrived", outcome="failed")

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_TRANSFER_FAILED)
        payout = ReconciliationEntry.objects.get(settlement=record, status=ReconciliationEntry.STATUS_OPEN)
        self.assertEqual(payout.kind, ReconciliationEntry.KIND_FAILED_TRANSFER)

    @override_settings(SETTLEMENT={"MAX_RECONCILIATION_ATTEMPTS": 1, "TRANSFER_RETRY_WAIT_SECONDS": (0, 0)})
    def test_abandoned_unknown_charge_fails_the_attempt(self):
        service = ReconciliationService(settlement_service=self.settlement_service, event_bus=self.event_bus)
        self.provider.leave_processing("pm_card_visa")
        record = self.settle().value.record

        with self.assertLogs("payment_system.domain.services.alerts", level="CRITICAL"):
            self.assertEqual(service.run_sweep().value["abandoned"], 1)

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_CHARGE_FAILED)
        self.assertEqual(record.failure_code, "reconciliation_abandoned")

        retry = self.settlement_service.settle_order(self.order.id, self.account, "pm_card_mastercard")

        self.assertTrue(retry.ok)
        self.assertEqual(retry.value.record.outcome, SettlementRecord.OUTCOME_COMPLETED)

    @override_settings(SETTLEMENT={"MAX_RECONCILIATION_ATTEMPTS": 1, "TRANSFER_RETRY_WAIT_SECONDS": (0, 0)})
    def test_abandoned_unknown_transfer_is_closed_without_a_new_payout(self):
        service = ReconciliationService(settlement_service=self.settlement_service, event_bus=self.event_bus)
        record, entry = self.timed_out_transfer(times=2)

        with self.assertLogs("payment_system.domain.services.alerts", level="CRITICAL"):
            self.assertEqual(service.run_sweep().value["abandoned"], 1)

        record.refresh_from_db()
        self.assertEqual(record.outcome, SettlementRecord.OUTCOME_TRANSFER_FAILED)
        self.assertFalse(ReconciliationEntry.objects.filter(status=ReconciliationEntry.STATUS_OPEN).exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "payout_scheduled")

        replay = self.settle()
        self.assertTrue(replay.value.replayed)

        # The operator pays by hand and closes the abandoned entry
        self.service.resolve_manually(entry.pk, "tr_paid_by_hand")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "settled")
