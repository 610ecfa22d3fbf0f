from prometheus_client import Counter

ledger_deposit_submitted_total = Counter(
    "ledger_deposit_submitted_total", "Number of deposits submitted for review", ["currency"]
)
ledger_purchase_total = Counter("ledger_purchase_total", "Number of purchases grouped by outcome", ["outcome"])
ledger_transition_total = Counter(
    "ledger_transition_total",
    "Number of ledger entry status transitions grouped by kind and outcome",
    ["kind", "outcome"],
)
ledger_balance_delta_total = Counter(
    "ledger_balance_delta_total", "Number of balance mutations grouped by direction", ["direction"]
)
ledger_insufficient_funds_total = Counter(
    "ledger_insufficient_funds_total", "Number of operations rejected for lack of balance", ["operation"]
)
ledger_permission_denied_total = Counter(
    "ledger_permission_denied_total", "Number of privileged operations rejected", ["operation"]
)
ledger_notification_failure_total = Counter(
    "ledger_notification_failure_total", "Number of notifications that failed to send", ["event_type"]
)
