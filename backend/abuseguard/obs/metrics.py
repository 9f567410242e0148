"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"abuseguard_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"abuseguard_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

ABUSE_VIOLATIONS_TOTAL = Counter(
	"abuse_violations_total",
	"Violations recorded",
	["violation_type", "severity"],
)

ABUSE_PENALTY_LEVEL_TOTAL = Counter(
	"abuse_penalty_level_total",
	"Penalty levels observed after each recorded violation",
	["level"],
)

ABUSE_SUSPENSIONS_TOTAL = Counter(
	"abuse_suspensions_total",
	"Suspension attempts by tier and outcome",
	["tier", "outcome"],
)

ABUSE_ACTIVE_SUSPENSIONS = Gauge(
	"abuse_active_suspensions",
	"Suspension markers scheduled by this process minus those reversed",
)

ABUSE_REINSTATEMENTS_TOTAL = Counter(
	"abuse_reinstatements_total",
	"Expiry reactor outcomes",
	["cause", "outcome"],
)

ABUSE_RELAYED_EXPIRIES_TOTAL = Counter(
	"abuse_relayed_expiries_total",
	"Expired suspension markers published to the change feed",
)

ABUSE_ADMIN_NOTIFICATIONS_TOTAL = Counter(
	"abuse_admin_notifications_total",
	"Admin notification conditional creates",
	["result"],
)

ABUSE_ESCALATIONS_TOTAL = Counter(
	"abuse_escalations_total",
	"Admin escalations created",
	["reason"],
)

ABUSE_DISPATCHES_TOTAL = Counter(
	"abuse_dispatches_total",
	"User-facing notification requests published",
	["kind"],
)

ABUSE_SIDE_EFFECT_FAILURES_TOTAL = Counter(
	"abuse_side_effect_failures_total",
	"Best-effort side effects that failed",
	["effect"],
)


ABUSE_GATE_BLOCKS_TOTAL = Counter(
	"abuse_gate_blocks_total",
	"Requests rejected because the caller is suspended",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_violation(violation_type: str, severity: str) -> None:
	ABUSE_VIOLATIONS_TOTAL.labels(violation_type=violation_type, severity=severity).inc()


def inc_penalty_level(level: str) -> None:
	ABUSE_PENALTY_LEVEL_TOTAL.labels(level=level).inc()


def inc_suspension(tier: int, outcome: str) -> None:
	ABUSE_SUSPENSIONS_TOTAL.labels(tier=str(tier), outcome=outcome).inc()
	if outcome == "created":
		ABUSE_ACTIVE_SUSPENSIONS.inc()


def inc_reinstatement(cause: str, outcome: str) -> None:
	ABUSE_REINSTATEMENTS_TOTAL.labels(cause=cause, outcome=outcome).inc()
	if outcome == "reinstated":
		ABUSE_ACTIVE_SUSPENSIONS.dec()


def inc_relayed_expiry() -> None:
	ABUSE_RELAYED_EXPIRIES_TOTAL.inc()


def inc_admin_notification(result: str) -> None:
	ABUSE_ADMIN_NOTIFICATIONS_TOTAL.labels(result=result).inc()


def inc_escalation(reason: str) -> None:
	ABUSE_ESCALATIONS_TOTAL.labels(reason=reason).inc()


def inc_dispatch(kind: str) -> None:
	ABUSE_DISPATCHES_TOTAL.labels(kind=kind).inc()


def inc_side_effect_failure(effect: str) -> None:
	ABUSE_SIDE_EFFECT_FAILURES_TOTAL.labels(effect=effect).inc()


def inc_gate_block() -> None:
	ABUSE_GATE_BLOCKS_TOTAL.inc()
