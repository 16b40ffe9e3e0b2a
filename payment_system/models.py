from .domain.models.reconciliation_entry import ReconciliationEntry
from .domain.models.settlement_record import SettlementRecord


__all__ = [
    "SettlementRecord",
    "ReconciliationEntry",
]
