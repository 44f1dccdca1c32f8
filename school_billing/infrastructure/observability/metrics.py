"""Prometheus metrics for monitoring billing runs, charge outcomes and provider health"""

from prometheus_client import Counter, Histogram, Gauge

# Billing metrics
charge_counter = Counter(
    "billing_charge_total",
    "Monthly charge attempts by outcome",
    ["outcome"],  # charged | failed | skipped
)

run_counter = Counter(
    "billing_run_total",
    "Billing runs by completion status",
    ["status"],  # completed | aborted
)

last_run_tenants_gauge = Gauge(
    "billing_last_run_tenants",
    "Tenants considered by the most recent billing run",
)

# Payment provider metrics
provider_latency_histogram = Histogram(
    "payment_provider_latency_seconds",
    "Off-session charge call response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_failures_counter = Counter(
    "payment_provider_failures_total",
    "Charge calls that failed at the transport level",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_charge(outcome: str) -> None:
    charge_counter.labels(outcome=outcome).inc()


def record_run(completed: bool, tenants: int = 0) -> None:
    """Record run completion and how many tenants it covered"""
    run_counter.labels(status="completed" if completed else "aborted").inc()
    if completed:
        last_run_tenants_gauge.set(tenants)
