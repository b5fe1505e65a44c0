"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Pricing metrics
pricing_quotes_total = Counter(
    "pricing_quotes_total",
    "Total pricing breakdowns computed",
    labelnames=["billing_interval"],
)

proration_calculations_total = Counter(
    "proration_calculations_total",
    "Total proration calculations",
    labelnames=["direction"],  # upgrade, downgrade, none
)

# Plan limit metrics
plan_limit_checks_total = Counter(
    "plan_limit_checks_total",
    "Total plan limit checks",
    labelnames=["entity_type", "result"],  # result: allowed, denied
)

# Subscription metrics
subscription_access_denied_total = Counter(
    "subscription_access_denied_total",
    "Total subscription access checks that denied access",
    labelnames=["error_code"],
)

subscriptions_created_total = Counter(
    "subscriptions_created_total",
    "Total subscriptions created",
    labelnames=["billing_interval", "status"],
)

subscription_transitions_total = Counter(
    "subscription_transitions_total",
    "Total subscription status transitions",
    labelnames=["from_status", "to_status"],
)

subscriptions_renewed_total = Counter(
    "subscriptions_renewed_total",
    "Total subscription renewals",
    labelnames=["billing_interval"],
)
