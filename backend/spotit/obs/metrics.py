"""Central registry for Prometheus metrics used across the engine."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"spotit_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"spotit_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SPOTS_CREATED = Counter(
	"spotit_spots_created_total",
	"Spot creations by outcome",
	["result"],
)

SPOT_MUTATIONS = Counter(
	"spotit_spot_mutations_total",
	"Reply and delete mutations by outcome",
	["op", "result"],
)

SYNC_RUNS = Counter(
	"spotit_sync_runs_total",
	"Reconciliation cycles by outcome",
	["result"],
)

MALFORMED_ROWS = Counter(
	"spotit_malformed_rows_total",
	"Storage rows rejected at the parsing boundary",
	["reason"],
)

NOTIFICATIONS_SURFACED = Counter(
	"spotit_notifications_surfaced_total",
	"Notifications transitioned to seen and shown to the viewer",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_spot_created(result: str) -> None:
	SPOTS_CREATED.labels(result=result).inc()


def inc_spot_mutation(op: str, result: str) -> None:
	SPOT_MUTATIONS.labels(op=op, result=result).inc()


def inc_sync(result: str) -> None:
	SYNC_RUNS.labels(result=result).inc()


def inc_malformed_row(reason: str) -> None:
	MALFORMED_ROWS.labels(reason=reason).inc()


def inc_notification_surfaced() -> None:
	NOTIFICATIONS_SURFACED.inc()
