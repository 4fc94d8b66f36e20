"""Prometheus metrics for monitoring scheduler health, bill transitions and notifications"""

from datetime import datetime

from prometheus_client import Counter, Gauge, Histogram

from oar_engine.domain.models import TickResult

# Bill lifecycle metrics
bill_transition_counter = Counter(
    "oar_bill_transitions_total",
    "Committed bill transitions",
    ["kind"],  # due | overdue | autopay | payment | reversal
)

bill_error_counter = Counter(
    "oar_bill_errors_total",
    "Per-bill failures during scheduler passes",
    ["reason"],  # validation | conflict | store
)

# Scheduler metrics
tick_counter = Counter(
    "oar_scheduler_ticks_total",
    "Scheduler ticks by outcome",
    ["source", "outcome"],  # tick | catch_up ; ok | errors | aborted
)

tick_duration_histogram = Histogram(
    "oar_scheduler_tick_duration_seconds",
    "Scheduler tick duration",
    ["source"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

watermark_gauge = Gauge(
    "oar_scheduler_watermark_timestamp_seconds",
    "Reference time of the last committed scheduler tick",
)

# Notification metrics
notification_latency_histogram = Histogram(
    "oar_notification_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "oar_notification_failures_total",
    "Failed notification deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_tick(source: str, result: TickResult, duration_seconds: float) -> None:
    """Record tick outcome and duration"""
    if result.aborted:
        outcome = "aborted"
    elif result.errors:
        outcome = "errors"
    else:
        outcome = "ok"
    tick_counter.labels(source=source, outcome=outcome).inc()
    tick_duration_histogram.labels(source=source).observe(duration_seconds)


def record_watermark(last_run_at: datetime) -> None:
    watermark_gauge.set(last_run_at.timestamp())
