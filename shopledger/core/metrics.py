"""Prometheus metrics for the pricing and fee reconciliation engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Statement import metrics
statement_rows_total = Counter(
    "shopledger_statement_rows_total",
    "Statement rows processed",
    ["outcome"],  # outcome: inserted, duplicate, skipped, error
)

statement_batches_total = Counter(
    "shopledger_statement_batches_total",
    "Statement import batches",
    ["status"],  # status: success, locked, failed
)

statement_batch_duration_seconds = Histogram(
    "shopledger_statement_batch_duration_seconds",
    "Statement batch import duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Cost ledger metrics
cost_updates_total = Counter(
    "shopledger_cost_updates_total",
    "Cost ledger updates",
    ["subject_kind", "status"],  # status: success, rejected, conflict
)

cost_update_conflicts_total = Counter(
    "shopledger_cost_update_conflicts_total",
    "Same-subject cost update races detected (retried)",
)

# Sales metrics
sales_recorded_total = Counter(
    "shopledger_sales_recorded_total",
    "Sales recorded with a locked-in cost",
    ["cost_source"],  # cost_source: sku_override, material, none
)
