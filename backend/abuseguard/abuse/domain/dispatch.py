"""Outbound user notifications: dispatcher port and payload builders.

The engine never renders or delivers messages itself. It hands a structured
payload to a :class:`NotificationDispatcher`; the transport behind it (email,
push, queue) owns presentation.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Protocol, Sequence

from abuseguard.abuse.domain.evidence import content_reference
from abuseguard.abuse.domain.models import ViolationRecord
from abuseguard.abuse.domain.policy import PolicyConfig, TierDecision

MAX_LISTED_VIOLATIONS = 5

_CONTENT_PATHS = {"post": "posts", "recipe": "recipes"}


class NotificationKind(str, Enum):
    WARNING = "warning"
    SUSPENSION = "suspension"


class NotificationDispatcher(Protocol):
    async def send(self, kind: NotificationKind, user_id: str, payload: dict[str, Any]) -> None:
        ...


def summarize_violation(record: ViolationRecord, *, frontend_url: str) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "violation_type": record.violation_type.value,
        "severity": record.severity.value,
        "timestamp": record.timestamp.isoformat(),
    }
    reference = content_reference(record.evidence)
    if reference is not None:
        kind, content_id = reference
        summary["content_kind"] = kind
        summary["content_id"] = content_id
        path = _CONTENT_PATHS.get(kind)
        if path:
            summary["link"] = f"{frontend_url.rstrip('/')}/{path}/{content_id}"
    return summary


def _listed(recent: Sequence[ViolationRecord], frontend_url: str) -> tuple[list[dict[str, Any]], int]:
    listed = [summarize_violation(record, frontend_url=frontend_url) for record in recent[:MAX_LISTED_VIOLATIONS]]
    return listed, max(len(recent) - MAX_LISTED_VIOLATIONS, 0)


def describe_duration(hours: int) -> str:
    if hours % 24 == 0 and hours >= 48:
        return f"{hours // 24} day suspension"
    return f"{hours} hour suspension"


def build_warning_payload(
    *,
    violation_count: int,
    recent: Sequence[ViolationRecord],
    policy: PolicyConfig,
    frontend_url: str,
) -> dict[str, Any]:
    listed, more = _listed(recent, frontend_url)
    shortest = policy.tiers[0].duration_hours
    longest = policy.tiers[-1].duration_hours
    return {
        "subject": "Warning: Multiple Violations Detected on Your Account",
        "violation_count": violation_count,
        "auto_suspend_threshold": policy.auto_suspend_threshold,
        "violations": listed,
        "more_violations": more,
        "lines": [
            f"We've detected {violation_count} violations of our community guidelines on your account this week.",
            f"At {policy.auto_suspend_threshold} violations, your account will be automatically suspended.",
            f"Suspensions range from {describe_duration(shortest)} to {describe_duration(longest)} depending on severity.",
        ],
        "guidelines_url": f"{frontend_url.rstrip('/')}/guidelines",
    }


def build_suspension_payload(
    *,
    decision: TierDecision,
    suspended_until: datetime,
    violation_count: int,
    recent: Sequence[ViolationRecord],
    frontend_url: str,
) -> dict[str, Any]:
    listed, more = _listed(recent, frontend_url)
    base = frontend_url.rstrip("/")
    lines = [
        "Your account has been temporarily suspended due to multiple violations of our community guidelines.",
        f"Duration: {describe_duration(decision.duration_hours)}",
        f"Suspended until: {suspended_until.isoformat()}",
        f"Violation count: {violation_count} violations this week",
        "Your account will be automatically reactivated after this period.",
    ]
    if decision.appeal_allowed:
        lines.append(f"If you believe this suspension was made in error, you can appeal at {base}/appeal.")
    else:
        lines.append(f"Due to the severity of violations (Tier {decision.tier}), this suspension cannot be appealed.")
    payload: dict[str, Any] = {
        "subject": "Your Account Has Been Suspended",
        "tier": decision.tier,
        "duration_hours": decision.duration_hours,
        "duration": describe_duration(decision.duration_hours),
        "suspended_until": suspended_until.isoformat(),
        "violation_count": violation_count,
        "appeal_allowed": decision.appeal_allowed,
        "violations": listed,
        "more_violations": more,
        "lines": lines,
        "guidelines_url": f"{base}/guidelines",
    }
    if decision.appeal_allowed:
        payload["appeal_url"] = f"{base}/appeal"
    return payload
