"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
    "sentinel_http_requests_total",
    "Total HTTP requests processed",
    ["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
    "sentinel_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["route", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

DETECTOR_VERDICTS = Counter(
    "sentinel_detector_verdicts_total",
    "Detector evaluations by outcome",
    ["detector", "outcome"],
)

FLAGS_TOTAL = Counter(
    "sentinel_flags_total",
    "Flag attempts by kind, severity and result",
    ["kind", "severity", "result"],
)

ESCALATIONS_TOTAL = Counter(
    "sentinel_escalations_total",
    "Account status escalations to flagged",
    ["result"],
)

REVIEWS_TOTAL = Counter(
    "sentinel_reviews_total",
    "Flag reviews completed by staff",
)

DUPLICATE_REJECTIONS = Counter(
    "sentinel_duplicate_rejections_total",
    "Create operations rejected for duplicate content",
)

GATE_REJECTIONS = Counter(
    "sentinel_gate_rejections_total",
    "Requests rejected by pre-commit gates",
    ["gate"],
)

STORE_LATENCY = Histogram(
    "sentinel_detection_store_seconds",
    "Latency of store round-trips made by detectors",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
    REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
    REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def detector_outcome(detector: str, outcome: str) -> None:
    DETECTOR_VERDICTS.labels(detector=detector, outcome=outcome).inc()


def flag_attempt(kind: str, severity: str, result: str) -> None:
    FLAGS_TOTAL.labels(kind=kind, severity=severity, result=result).inc()


def escalation(result: str) -> None:
    ESCALATIONS_TOTAL.labels(result=result).inc()


def review_completed() -> None:
    REVIEWS_TOTAL.inc()


def duplicate_rejected() -> None:
    DUPLICATE_REJECTIONS.inc()


def gate_rejected(gate: str) -> None:
    GATE_REJECTIONS.labels(gate=gate).inc()


def observe_store(operation: str, elapsed_seconds: float) -> None:
    STORE_LATENCY.labels(operation=operation).observe(elapsed_seconds)
