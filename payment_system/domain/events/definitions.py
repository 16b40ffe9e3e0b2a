from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass
class SettlementCompleted:
    order_id: str
    settlement_id: str
    charge_ref: str
    transfer_ref: str
    total_amount: Decimal
    platform_commission: Decimal
    seller_payout: Decimal
    currency: str
    occurred_at: datetime


@dataclass
class SettlementChargeFailed:
    order_id: str
    settlement_id: str
    attempt_number: int
    failure_code: str
    reason: str
    occurred_at: datetime


@dataclass
class SettlementPayoutDeferred:
    """Buyer charged; seller payout queued for reconciliation."""

    order_id: str
    settlement_id: str
    outcome: str
    seller_payout: Decimal
    currency: str
    occurred_at: datetime


@dataclass
class PayoutReconciled:
    order_id: str
    settlement_id: str
    entry_id: str
    resolution_ref: str
    amount: Decimal
    currency: str
    occurred_at: datetime


@dataclass
class SettlementAlert:
    """Operator alert: money moved but not where it should be, or its state is unknown."""

    order_id: str
    settlement_id: str
    reason: str
    detail: str
    amount: Decimal
    currency: str
    occurred_at: datetime
