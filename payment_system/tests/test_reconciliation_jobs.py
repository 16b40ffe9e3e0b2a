from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase

from infrastructure.container import container
from marketplace.tests.factories import OrderFactory, SellerAccountFactory
from payment_system.domain.models import SettlementRecord
from payment_system.Tasks import run_reconciliation_sweep_task


class ReconciliationJobTestCase(TestCase):
    def setUp(self):
        container.reset()
        account = SellerAccountFactory()
        self.order = OrderFactory(seller=account.seller, total_amount=Decimal("19.99"))
        container.payment().time_out_next_charge()
        container.settlement_service().settle_order(self.order.id, account, "pm_card_visa")


class ReconciliationTaskTests(ReconciliationJobTestCase):
    def test_task_runs_sweep(self):
        result = run_reconciliation_sweep_task.apply(kwargs={"limit": 10}).get()

        self.assertTrue(result["success"])
        self.assertEqual(result["resolved"], 1)
        self.assertEqual(SettlementRecord.objects.get().outcome, SettlementRecord.OUTCOME_COMPLETED)

    @patch("payment_system.domain.services.reconciliation_service.ReconciliationService.run_sweep")
    def test_task_retries_on_database_error(self, mock_run_sweep):
        mock_run_sweep.side_effect = DatabaseError("connection lost")

        with patch.object(run_reconciliation_sweep_task, "retry", side_effect=RuntimeError("retry")) as mock_retry:
            with self.assertRaises(RuntimeError):
                run_reconciliation_sweep_task.apply(kwargs={"limit": 10}, throw=True)

        mock_retry.assert_called_once()


class ReconcileSettlementsCommandTests(ReconciliationJobTestCase):
    def test_command_reports_counts(self):
        out = StringIO()

        call_command("reconcile_settlements", "--limit", "5", stdout=out)

        output = out.getvalue()
        self.assertIn("Processed 1 entries: 1 resolved", output)
        self.assertIn("Settlement reconciliation complete.", output)

    def test_command_rejects_bad_limit(self):
        with self.assertRaises(CommandError):
            call_command("reconcile_settlements", "--limit", "0", stdout=StringIO())
