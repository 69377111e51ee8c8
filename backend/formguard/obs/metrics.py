"""Central registry for Prometheus metrics used across the service."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"formguard_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"formguard_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

VERDICTS_TOTAL = Counter(
	"formguard_verdicts_total",
	"Spam verdicts emitted by action",
	["action"],
)

DETECTOR_LATENCY = Histogram(
	"formguard_detector_seconds",
	"Time spent per detector",
	["detector"],
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 45.0),
)

DETECTOR_FAILURES = Counter(
	"formguard_detector_failures_total",
	"Detector checks that raised and were scored as zero",
	["detector", "check"],
)

MODERATION_CALLS = Counter(
	"formguard_moderation_calls_total",
	"External moderation calls by outcome",
	["outcome"],
)

STRIKES_RECORDED = Counter(
	"formguard_strikes_recorded_total",
	"Soft-warning strikes recorded",
)

LOG_WRITE_FAILURES = Counter(
	"formguard_log_write_failures_total",
	"Spam log writes that failed and were dropped",
)


def record_request(route: str, method: str, status: int, duration: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(duration)
