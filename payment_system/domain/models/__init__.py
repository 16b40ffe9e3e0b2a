from .reconciliation_entry import ReconciliationEntry
from .settlement_record import SettlementRecord


__all__ = [
    "SettlementRecord",
    "ReconciliationEntry",
]
