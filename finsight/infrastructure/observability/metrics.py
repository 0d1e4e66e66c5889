"""Prometheus metrics for analysis outcomes, anomalies and model training"""

from typing import Iterable

from prometheus_client import Counter, Histogram, generate_latest

# Analysis metrics
analysis_counter = Counter(
    "finsight_analysis_total",
    "Engine operations run",
    ["operation", "outcome"],  # outcome: ok | insufficient_data | error
)

analysis_latency_histogram = Histogram(
    "finsight_analysis_duration_seconds",
    "Time spent fetching data and running one engine operation",
    ["operation"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

anomaly_counter = Counter(
    "finsight_anomalies_total",
    "Anomalous transactions flagged",
    ["severity"],  # warning | high | critical
)

# Training metrics
training_counter = Counter(
    "finsight_training_runs_total",
    "Model training runs",
    ["model_type", "outcome"],  # outcome: trained | failed
)

training_duration_histogram = Histogram(
    "finsight_training_duration_seconds",
    "Model training wall time",
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
)

# Transaction store metrics
source_fetch_failures_counter = Counter(
    "finsight_source_fetch_failures_total",
    "Failed calls to the transaction store",
    ["endpoint"],
)


def record_analysis(operation: str, has_data: bool, duration_seconds: float) -> None:
    outcome = "ok" if has_data else "insufficient_data"
    analysis_counter.labels(operation=operation, outcome=outcome).inc()
    analysis_latency_histogram.labels(operation=operation).observe(duration_seconds)


def record_analysis_error(operation: str) -> None:
    analysis_counter.labels(operation=operation, outcome="error").inc()


def record_anomalies(severities: Iterable[str]) -> None:
    """Count flagged anomalies by severity"""
    for severity in severities:
        anomaly_counter.labels(severity=severity).inc()


def record_training(model_type: str, success: bool, duration_seconds: float) -> None:
    training_counter.labels(model_type=model_type, outcome="trained" if success else "failed").inc()
    training_duration_histogram.observe(duration_seconds)


def render_metrics() -> bytes:
    """Prometheus text exposition of every metric in the default registry"""
    return generate_latest()
