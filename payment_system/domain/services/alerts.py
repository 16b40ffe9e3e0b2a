"""
Operator alerts for settlements that need a human.

An alert is a CRITICAL log line, a ``settlement.alert`` event on the bus
(the payment listeners turn it into an e-mail), and a counter increment.
"""

import logging
from dataclasses import asdict

from django.utils import timezone

from payment_system.domain.events.definitions import SettlementAlert
from payment_system.domain.exceptions import TransferFailed
from payment_system.infra.observability.metrics import settlement_alerts_total


logger = logging.getLogger(__name__)

ALERT_EVENT = "settlement.alert"

REASON_TRANSFER_FAILED = TransferFailed.code
REASON_RECONCILIATION_ABANDONED = "reconciliation_abandoned"
REASON_CHARGE_AMOUNT_MISMATCH = "charge_amount_mismatch"


def raise_operator_alert(event_bus, record, reason: str, detail: str, amount=None):
    amount = record.seller_payout if amount is None else amount
    logger.critical(
        f"[SETTLEMENT ALERT] {reason} for order {record.order_id} attempt {record.attempt_number}: "
        f"{amount} {record.currency.upper()} - {detail}"
    )
    settlement_alerts_total.labels(reason=reason).inc()

    event = SettlementAlert(
        order_id=str(record.order_id),
        settlement_id=str(record.id),
        reason=reason,
        detail=detail,
        amount=amount,
        currency=record.currency,
        occurred_at=timezone.now(),
    )
    event_bus.publish(ALERT_EVENT, asdict(event))
