"""Prometheus metrics for credit check throughput, risk mix and notification delivery"""

from prometheus_client import Counter, Histogram, Gauge

# Credit check metrics
credit_check_submitted_counter = Counter(
    "broker_credit_check_submitted_total",
    "Credit checks submitted",
)

credit_check_resolution_counter = Counter(
    "broker_credit_check_resolution_total",
    "Provider resolutions by outcome",
    ["outcome"],  # completed | failed | pending | ignored
)

credit_check_resolution_latency = Histogram(
    "broker_credit_check_resolution_seconds",
    "Time from submission to provider resolution",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0],
)

risk_classification_counter = Counter(
    "broker_risk_classification_total",
    "Risk classifications computed by level",
    ["risk_level"],  # low | medium | high | critical
)

# Notification metrics
notification_published_counter = Counter(
    "broker_notification_published_total",
    "Notifications persisted and pushed",
    ["type"],
)

bus_delivery_failures_counter = Counter(
    "broker_bus_delivery_failures_total",
    "Failed live deliveries on the notification bus",
)

bus_subscribers_gauge = Gauge(
    "broker_bus_subscribers",
    "Currently connected notification subscribers",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_resolution(outcome: str, duration_seconds: float | None = None) -> None:
    """Record one provider resolution; duration only for applied transitions"""
    credit_check_resolution_counter.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        credit_check_resolution_latency.observe(duration_seconds)
