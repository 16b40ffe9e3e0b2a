from prometheus_client import Counter, Histogram


# Settlement metrics
settlements_total = Counter("settlements_total", "Settlement attempts by final outcome", ["outcome"])

charge_volume_total = Counter("settlement_charge_volume_total", "Total buyer charge volume", ["currency", "status"])

payout_volume_total = Counter("settlement_payout_volume_total", "Total seller payout volume", ["currency", "status"])

settlement_duration = Histogram(
    "settlement_duration_seconds",
    "Time spent settling one order",
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, float("inf")],
)

# Operator attention
settlement_alerts_total = Counter("settlement_alerts_total", "Operator alerts raised", ["reason"])

reconciliation_results_total = Counter(
    "settlement_reconciliation_results_total", "Reconciliation sweep results", ["kind", "result"]
)
